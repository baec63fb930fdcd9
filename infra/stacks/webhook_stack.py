"""
Webhook handler stack: ingress, input queue, handler function and output bucket
"""

from aws_cdk import CfnOutput
from constructs import Construct

from cdk_constructs.logical_ids import LogicalIdPrefixer, PrefixedStack
from cdk_constructs.naming import NameGenerator
from stacks.config import StackVariant, WebhookStackProps
from stacks.graph import IngressKind, ResourceGraph, ResourceGraphBuilder
from stacks.permissions import Capability, PermissionGrantor
from stacks.utils import setup_logger

logger = setup_logger(__name__)

_INGRESS_BY_VARIANT = {
    StackVariant.API_GATEWAY_QUEUE_FUNCTION_BUCKET: IngressKind.REST_API,
    StackVariant.QUEUE_FUNCTION_HTTP_API: IngressKind.HTTP_API,
    StackVariant.QUEUE_FUNCTION_BUCKET: None,
}


class WebhookHandlerStack(PrefixedStack):
    """
    Stack for one environment of the webhook pipeline, shaped by props.variant
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        props: WebhookStackProps,
        names: NameGenerator,
        **kwargs,
    ) -> None:
        super().__init__(
            scope,
            construct_id,
            logical_ids=LogicalIdPrefixer() if props.prefix_logical_ids else None,
            stack_name=names.generate_name("stack", "stack"),
            env=props.env,
            description=f"Intercom webhook handler ({props.variant.value}) - {names.environment}",
            **kwargs,
        )

        self.props = props
        self.names = names
        variant = props.variant

        builder = ResourceGraphBuilder(self, names, props)
        grantor = PermissionGrantor(builder)

        bucket = builder.add_bucket() if variant.has_bucket else None
        queue = builder.add_queue()

        ingress = None
        ingress_kind = _INGRESS_BY_VARIANT[variant]
        if ingress_kind is not None:
            ingress = builder.add_ingress(queue, ingress_kind)

        role = builder.add_handler_role() if variant.has_named_role else None
        handler = builder.add_function(queue, bucket=bucket, role=role)
        builder.bind_event_source(queue, handler)

        grantor.grant(handler, queue, Capability.CONSUME_MESSAGES)
        if bucket is not None:
            grantor.grant(handler, bucket, Capability.PUT_OBJECT)
        if ingress is not None and ingress.grantable is not None:
            grantor.grant(ingress, queue, Capability.SEND_MESSAGES)

        CfnOutput(self, "InputQueueUrl", value=queue.queue.queue_url)
        if bucket is not None:
            CfnOutput(self, "OutputBucketName", value=bucket.bucket.bucket_name)
        if ingress is not None:
            CfnOutput(self, "IngressUrl", value=ingress.ingress.url)

        self.graph: ResourceGraph = builder.graph
        self.grantor = grantor
        self.bucket = bucket
        self.queue = queue
        self.ingress = ingress
        self.handler = handler

        for generated, base in names.issued_names.items():
            logger.debug(f"{construct_id}: {base} -> {generated}")


def build_stack(
    scope: Construct, construct_id: str, props: WebhookStackProps
) -> WebhookHandlerStack:
    """
    Build the webhook pipeline for one environment

    Every call gets its own name generator and graph, so stacks for different
    environments never share state.
    """
    names = NameGenerator(props.api_env)
    stack = WebhookHandlerStack(scope, construct_id, props=props, names=names)
    logger.info(
        f"Built stack {stack.stack_name} for environment {names.environment} "
        f"({props.variant.value})"
    )
    return stack
