"""
Synthesis-time configuration for the webhook handler stacks

Values are looked up in CDK context first, then in the process environment
(after loading a ``.env`` file), then fall back to defaults. The result is
handed to the stack assembler explicitly.
"""

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

import aws_cdk as cdk
from dotenv import load_dotenv

from cdk_constructs.handler_function import (
    DEFAULT_CARGO_LAMBDA_FLAGS,
    METRICS_RECEIVER_ENDPOINT,
    OTEL_ENDPOINT,
)

DEFAULT_ENVIRONMENTS = ("Stage", "Prod")
DEFAULT_HANDLER_CODE_PATH = "../handler"


class ConfigurationError(ValueError):
    """Raised when synthesis-time configuration is missing or invalid"""


class StackVariant(str, Enum):
    """Deployable topologies of the webhook pipeline"""

    API_GATEWAY_QUEUE_FUNCTION_BUCKET = "ApiGatewayQueueFunctionBucket"
    QUEUE_FUNCTION_HTTP_API = "QueueFunctionHttpApi"
    QUEUE_FUNCTION_BUCKET = "QueueFunctionBucket"

    @property
    def has_bucket(self) -> bool:
        return self is not StackVariant.QUEUE_FUNCTION_HTTP_API

    @property
    def has_named_role(self) -> bool:
        return self is StackVariant.QUEUE_FUNCTION_BUCKET


DEFAULT_VARIANT = StackVariant.API_GATEWAY_QUEUE_FUNCTION_BUCKET


@dataclass(frozen=True)
class WebhookStackProps:
    """Everything one synthesis pass needs for a single environment"""

    api_env: str
    variant: StackVariant = DEFAULT_VARIANT
    env: Optional[cdk.Environment] = None
    handler_code_path: str = DEFAULT_HANDLER_CODE_PATH
    cargo_lambda_flags: Tuple[str, ...] = DEFAULT_CARGO_LAMBDA_FLAGS
    batch_size: int = 10
    max_batching_window_seconds: int = 0
    handler_timeout_seconds: int = 30
    handler_memory_size: int = 128
    layer_arns: Tuple[str, ...] = ()
    prefix_logical_ids: bool = True
    otel_endpoint: str = OTEL_ENDPOINT
    metrics_receiver_endpoint: str = METRICS_RECEIVER_ENDPOINT


@dataclass(frozen=True)
class DeploymentConfig:
    """Configuration shared by every stack the app synthesizes"""

    environments: Tuple[str, ...] = DEFAULT_ENVIRONMENTS
    account: Optional[str] = None
    region: Optional[str] = None
    stack_settings: Dict[str, Any] = field(default_factory=dict)

    def props_for(self, environment_id: str) -> WebhookStackProps:
        """Build the stack properties for one environment, e.g. "Stage" """
        return WebhookStackProps(
            api_env=environment_id.lower(),
            env=cdk.Environment(account=self.account, region=self.region),
            **self.stack_settings,
        )


def _env_key(context_key: str) -> str:
    """stackVariant -> STACK_VARIANT"""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", context_key).upper()


def _as_int(key: str, value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be an integer, got {value!r}") from None


def _as_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in ("true", "1", "yes"):
        return True
    if normalized in ("false", "0", "no"):
        return False
    raise ConfigurationError(f"{key} must be a boolean, got {value!r}")


def _as_tuple(value: Any, separator: Optional[str] = ",") -> Tuple[str, ...]:
    if isinstance(value, str):
        parts = value.split(separator)
    elif isinstance(value, Sequence):
        parts = [str(part) for part in value]
    else:
        parts = [str(value)]
    return tuple(part.strip() for part in parts if part.strip())


def _as_variant(value: Any) -> StackVariant:
    if isinstance(value, StackVariant):
        return value
    try:
        return StackVariant(str(value))
    except ValueError:
        valid = ", ".join(variant.value for variant in StackVariant)
        raise ConfigurationError(
            f"Unknown stack variant {value!r}; expected one of: {valid}"
        ) from None


def load_config(
    app: cdk.App,
    environ: Optional[Mapping[str, str]] = None,
    dotenv_path: Optional[str] = None,
) -> DeploymentConfig:
    """
    Read deployment configuration once, before any stack is built

    ``environ`` defaults to ``os.environ`` after loading ``.env``; tests pass a
    plain dict instead.
    """
    if environ is None:
        load_dotenv(dotenv_path)
        environ = os.environ

    def lookup(key: str, default: Any = None) -> Any:
        value = app.node.try_get_context(key)
        if value is None:
            value = environ.get(_env_key(key))
        return default if value is None else value

    environments = _as_tuple(lookup("environments", DEFAULT_ENVIRONMENTS))
    if not environments:
        raise ConfigurationError("At least one target environment is required")

    stack_settings = {
        "variant": _as_variant(lookup("stackVariant", DEFAULT_VARIANT)),
        "handler_code_path": str(lookup("handlerCodePath", DEFAULT_HANDLER_CODE_PATH)),
        # Flags are whitespace separated on the command line
        "cargo_lambda_flags": _as_tuple(
            lookup("cargoLambdaFlags", DEFAULT_CARGO_LAMBDA_FLAGS), separator=None
        ),
        "batch_size": _as_int("batchSize", lookup("batchSize", 10)),
        "max_batching_window_seconds": _as_int(
            "maxBatchingWindowSeconds", lookup("maxBatchingWindowSeconds", 0)
        ),
        "handler_timeout_seconds": _as_int(
            "handlerTimeoutSeconds", lookup("handlerTimeoutSeconds", 30)
        ),
        "handler_memory_size": _as_int(
            "handlerMemorySize", lookup("handlerMemorySize", 128)
        ),
        "layer_arns": _as_tuple(lookup("layerArns", ())),
        "prefix_logical_ids": _as_bool(
            "prefixLogicalIds", lookup("prefixLogicalIds", True)
        ),
        "otel_endpoint": str(lookup("otelEndpoint", OTEL_ENDPOINT)),
        "metrics_receiver_endpoint": str(
            lookup("metricsReceiverEndpoint", METRICS_RECEIVER_ENDPOINT)
        ),
    }

    return DeploymentConfig(
        environments=environments,
        # Context, then only the variables the CDK CLI sets
        account=app.node.try_get_context("account") or environ.get("CDK_DEFAULT_ACCOUNT"),
        region=app.node.try_get_context("region") or environ.get("CDK_DEFAULT_REGION"),
        stack_settings=stack_settings,
    )
