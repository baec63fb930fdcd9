"""
Lambda construct for the Rust webhook handler binary
"""

from aws_cdk import (
    aws_lambda as lambda_,
    aws_iam as iam,
    aws_logs as logs,
    BundlingOptions,
    DockerImage,
    Duration,
    RemovalPolicy,
)
from constructs import Construct
from typing import Dict, List, Optional, Sequence

CARGO_LAMBDA_IMAGE = "ghcr.io/cargo-lambda/cargo-lambda"
DEFAULT_CARGO_LAMBDA_FLAGS = ("--target", "aarch64-unknown-linux-musl")

# Telemetry collector endpoints served by the extension running next to the handler
OTEL_ENDPOINT = "http://localhost:4317/v1/traces"
METRICS_RECEIVER_ENDPOINT = "localhost:4317"


def cargo_lambda_command(flags: Sequence[str]) -> List[str]:
    """Return the bundling command that builds the crate and stages its bootstrap"""
    build = " ".join(["cargo", "lambda", "build", "--release", *flags])
    return [
        "bash",
        "-c",
        f"{build} && cp target/lambda/*/bootstrap /asset-output/bootstrap",
    ]


class RustHandlerFunction(Construct):
    """
    ARM64 Lambda running a cargo-lambda built binary on provided.al2023
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        function_name: str,
        code_path: str,
        timeout: Duration,
        environment_variables: Optional[Dict[str, str]] = None,
        cargo_lambda_flags: Optional[Sequence[str]] = None,
        otel_endpoint: str = OTEL_ENDPOINT,
        metrics_receiver_endpoint: str = METRICS_RECEIVER_ENDPOINT,
        memory_size: int = 128,
        layer_arns: Optional[Sequence[str]] = None,
        role: Optional[iam.IRole] = None,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        log_group = logs.LogGroup(
            self,
            "LogGroup",
            log_group_name=f"/aws/lambda/{function_name}",
            retention=logs.RetentionDays.ONE_MONTH,
            removal_policy=RemovalPolicy.DESTROY,
        )

        # Key names are read by the handler binary and must not change
        default_env_vars = {
            "OTEL_ENDPOINT": otel_endpoint,
            "DD_OTLP_CONFIG_RECEIVER_PROTOCOLS_GRPC_ENDPOINT": metrics_receiver_endpoint,
        }
        final_env_vars = {**default_env_vars, **(environment_variables or {})}

        self.cargo_lambda_flags = list(
            DEFAULT_CARGO_LAMBDA_FLAGS if cargo_lambda_flags is None else cargo_lambda_flags
        )

        layers = [
            lambda_.LayerVersion.from_layer_version_arn(self, f"Layer{index}", arn)
            for index, arn in enumerate(layer_arns or [])
        ]

        self.function = lambda_.Function(
            self,
            "Function",
            function_name=function_name,
            runtime=lambda_.Runtime.PROVIDED_AL2023,
            architecture=lambda_.Architecture.ARM_64,
            handler="bootstrap",
            code=lambda_.Code.from_asset(
                code_path,
                bundling=BundlingOptions(
                    image=DockerImage.from_registry(CARGO_LAMBDA_IMAGE),
                    command=cargo_lambda_command(self.cargo_lambda_flags),
                ),
            ),
            timeout=timeout,
            memory_size=memory_size,
            environment=final_env_vars,
            log_group=log_group,
            layers=layers or None,
            role=role,
        )
