"""
Resource graph for the webhook pipeline and the staged builder that declares it

Resources are declared through ResourceGraphBuilder, which hands back a handle
for each one. Wiring operations only accept handles, so a binding can never
refer to a resource that has not been declared yet.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from aws_cdk import (
    Duration,
    RemovalPolicy,
    aws_iam as iam,
    aws_lambda_event_sources as lambda_event_sources,
    aws_s3 as s3,
)
from constructs import Construct

from cdk_constructs.handler_function import RustHandlerFunction
from cdk_constructs.ingress import HttpApiToSqs, RestApiToSqs
from cdk_constructs.naming import NameGenerator
from cdk_constructs.webhook_queue import WebhookQueue
from stacks.config import WebhookStackProps

# AWS recommends a visibility timeout of six times the consumer timeout
VISIBILITY_TIMEOUT_FACTOR = 6


class GraphOrderError(RuntimeError):
    """Raised when wiring refers to a resource the graph does not contain"""


class EdgeKind(str, Enum):
    EVENT_SOURCE = "event-source"
    ENV_VAR_REFERENCE = "env-var-reference"
    PERMISSION_GRANT = "permission-grant"


class IngressKind(str, Enum):
    REST_API = "rest-api"
    HTTP_API = "http-api"


@dataclass(frozen=True)
class NamedResource:
    kind: str
    base_name: str
    generated_name: str


@dataclass(frozen=True)
class Edge:
    """Directed edge; the source provides something to the sink"""

    source: str
    sink: str
    kind: EdgeKind
    label: str = ""


class ResourceGraph:
    """Declared resources keyed by ID and the edges between them"""

    def __init__(self) -> None:
        self._resources: Dict[str, NamedResource] = {}
        self._edges: List[Edge] = []

    def add_resource(self, resource_id: str, resource: NamedResource) -> None:
        if resource_id in self._resources:
            raise GraphOrderError(f"Resource {resource_id!r} is already declared")
        self._resources[resource_id] = resource

    def add_edge(
        self, source: str, sink: str, kind: EdgeKind, label: str = ""
    ) -> Edge:
        for endpoint in (source, sink):
            if endpoint not in self._resources:
                raise GraphOrderError(
                    f"Cannot add {kind.value} edge {source} -> {sink}: "
                    f"{endpoint!r} is not declared"
                )
        edge = Edge(source, sink, kind, label)
        if edge not in self._edges:
            self._edges.append(edge)
        return edge

    def __contains__(self, resource_id: str) -> bool:
        return resource_id in self._resources

    @property
    def resources(self) -> Dict[str, NamedResource]:
        return dict(self._resources)

    @property
    def edges(self) -> Tuple[Edge, ...]:
        return tuple(self._edges)

    @property
    def generated_names(self) -> Tuple[str, ...]:
        return tuple(r.generated_name for r in self._resources.values())

    def edges_of_kind(self, kind: EdgeKind) -> Tuple[Edge, ...]:
        return tuple(edge for edge in self._edges if edge.kind is kind)


@dataclass(frozen=True, eq=False)
class ResourceHandle:
    """Proof that a resource was declared by a particular builder"""

    resource_id: str
    owner: "ResourceGraphBuilder"


@dataclass(frozen=True, eq=False)
class BucketHandle(ResourceHandle):
    bucket: s3.Bucket


@dataclass(frozen=True, eq=False)
class QueueHandle(ResourceHandle):
    queue: WebhookQueue


@dataclass(frozen=True, eq=False)
class IngressHandle(ResourceHandle):
    ingress: Union[RestApiToSqs, HttpApiToSqs]
    kind: IngressKind

    @property
    def grantable(self) -> Optional[iam.IGrantable]:
        # HTTP API integrations carry their own role
        if isinstance(self.ingress, RestApiToSqs):
            return self.ingress.role
        return None


@dataclass(frozen=True, eq=False)
class FunctionHandle(ResourceHandle):
    function: RustHandlerFunction

    @property
    def grantable(self) -> iam.IGrantable:
        return self.function.function


class ResourceGraphBuilder:
    """
    Declares the pipeline's resources into a CDK scope and records the graph
    """

    def __init__(
        self, scope: Construct, names: NameGenerator, props: WebhookStackProps
    ) -> None:
        self.scope = scope
        self.names = names
        self.props = props
        self.graph = ResourceGraph()

    def require(self, handle: ResourceHandle) -> None:
        """Fail unless handle was issued by this builder"""
        if handle.owner is not self or handle.resource_id not in self.graph:
            raise GraphOrderError(
                f"Resource {handle.resource_id!r} was not declared by this builder"
            )

    def _declare(self, resource_id: str, kind: str, base_name: str) -> str:
        name = self.names.generate_name(base_name, kind)
        self.graph.add_resource(resource_id, NamedResource(kind, base_name, name))
        return name

    def add_bucket(self) -> BucketHandle:
        """Declare the output bucket, destroyed along with the stack"""
        bucket_name = self._declare("OutputBucket", "bucket", "output-bucket")
        bucket = s3.Bucket(
            self.scope,
            "OutputBucket",
            bucket_name=bucket_name,
            encryption=s3.BucketEncryption.S3_MANAGED,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            enforce_ssl=True,
            # Clean teardown wins over retention; revisit before keeping prod data here
            removal_policy=RemovalPolicy.DESTROY,
        )
        return BucketHandle("OutputBucket", self, bucket)

    def add_queue(self) -> QueueHandle:
        """Declare the input queue and its dead letter queue"""
        queue_name = self._declare("InputQueue", "queue", "input-queue")
        dlq_name = self._declare("InputDeadLetterQueue", "queue", "input-dlq")
        queue = WebhookQueue(
            self.scope,
            "Input",
            queue_name=queue_name,
            dlq_name=dlq_name,
            visibility_timeout=Duration.seconds(
                self.props.handler_timeout_seconds * VISIBILITY_TIMEOUT_FACTOR
            ),
        )
        return QueueHandle("InputQueue", self, queue)

    def add_ingress(self, queue: QueueHandle, kind: IngressKind) -> IngressHandle:
        """Declare the HTTP entry point that buffers requests into queue"""
        self.require(queue)
        api_name = self._declare("Ingress", "api", "queue-api")
        if kind is IngressKind.REST_API:
            ingress = RestApiToSqs(
                self.scope, "Ingress", api_name=api_name, queue=queue.queue.queue
            )
        else:
            ingress = HttpApiToSqs(
                self.scope, "Ingress", api_name=api_name, queue=queue.queue.queue
            )
        return IngressHandle("Ingress", self, ingress, kind)

    def add_handler_role(self) -> iam.Role:
        """Declare an explicitly named execution role for the handler"""
        role_name = self._declare("HandlerRole", "role", "handler-role")
        return iam.Role(
            self.scope,
            "HandlerRole",
            role_name=role_name,
            assumed_by=iam.ServicePrincipal("lambda.amazonaws.com"),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name(
                    "service-role/AWSLambdaBasicExecutionRole"
                )
            ],
        )

    def add_function(
        self,
        queue: QueueHandle,
        bucket: Optional[BucketHandle] = None,
        role: Optional[iam.IRole] = None,
    ) -> FunctionHandle:
        """
        Declare the handler function

        Environment variables take the resolved references of the queue and,
        when given, the bucket; both must already be declared.
        """
        self.require(queue)
        if bucket is not None:
            self.require(bucket)

        function_name = self._declare("Handler", "function", "handler")
        environment_variables = {
            "ENVIRONMENT": self.names.environment,
            "INPUT_QUEUE_URL": queue.queue.queue_url,
        }
        if bucket is not None:
            environment_variables["OUTPUT_BUCKET"] = bucket.bucket.bucket_name

        function = RustHandlerFunction(
            self.scope,
            "Handler",
            function_name=function_name,
            code_path=self.props.handler_code_path,
            timeout=Duration.seconds(self.props.handler_timeout_seconds),
            environment_variables=environment_variables,
            cargo_lambda_flags=self.props.cargo_lambda_flags,
            otel_endpoint=self.props.otel_endpoint,
            metrics_receiver_endpoint=self.props.metrics_receiver_endpoint,
            memory_size=self.props.handler_memory_size,
            layer_arns=self.props.layer_arns,
            role=role,
        )

        self.graph.add_edge(
            queue.resource_id, "Handler", EdgeKind.ENV_VAR_REFERENCE, "INPUT_QUEUE_URL"
        )
        if bucket is not None:
            self.graph.add_edge(
                bucket.resource_id, "Handler", EdgeKind.ENV_VAR_REFERENCE, "OUTPUT_BUCKET"
            )
        return FunctionHandle("Handler", self, function)

    def bind_event_source(self, queue: QueueHandle, function: FunctionHandle) -> Edge:
        """Invoke function with batches of messages from queue"""
        self.require(queue)
        self.require(function)

        max_batching_window = (
            Duration.seconds(self.props.max_batching_window_seconds)
            if self.props.max_batching_window_seconds
            else None
        )
        function.function.function.add_event_source(
            lambda_event_sources.SqsEventSource(
                queue.queue.queue,
                batch_size=self.props.batch_size,
                max_batching_window=max_batching_window,
            )
        )
        return self.graph.add_edge(
            queue.resource_id, function.resource_id, EdgeKind.EVENT_SOURCE
        )
