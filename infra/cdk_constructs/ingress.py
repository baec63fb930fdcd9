"""
HTTP ingress constructs that buffer webhook calls straight into SQS
"""

from aws_cdk import (
    Stack,
    aws_apigateway as apigw,
    aws_apigatewayv2 as apigwv2,
    aws_apigatewayv2_integrations as integrations,
    aws_iam as iam,
    aws_sqs as sqs,
)
from constructs import Construct

THROTTLE_RATE_LIMIT = 1000  # requests per second
THROTTLE_BURST_LIMIT = 2000

# API Gateway forwards the raw body as the SQS message body
SEND_MESSAGE_TEMPLATE = "Action=SendMessage&MessageBody=$util.urlEncode($input.body)"


class RestApiToSqs(Construct):
    """
    REST API whose POST method sends the request body to an SQS queue

    The integration role is created here without permissions; the caller grants
    it send access to the queue.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        api_name: str,
        queue: sqs.IQueue,
        stage_name: str = "prod",
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.role = iam.Role(
            self,
            "ApiGatewayRole",
            assumed_by=iam.ServicePrincipal("apigateway.amazonaws.com"),
            description=f"Allows {api_name} to send messages to SQS",
        )

        self.api = apigw.RestApi(
            self,
            "RestApi",
            rest_api_name=api_name,
            description=f"Webhook ingress - {api_name}",
            cloud_watch_role=False,
            endpoint_configuration=apigw.EndpointConfiguration(
                types=[apigw.EndpointType.REGIONAL]
            ),
            deploy_options=apigw.StageOptions(
                stage_name=stage_name,
                throttling_rate_limit=THROTTLE_RATE_LIMIT,
                throttling_burst_limit=THROTTLE_BURST_LIMIT,
            ),
        )

        sqs_integration = apigw.AwsIntegration(
            service="sqs",
            path=f"{Stack.of(self).account}/{queue.queue_name}",
            integration_http_method="POST",
            options=apigw.IntegrationOptions(
                credentials_role=self.role,
                passthrough_behavior=apigw.PassthroughBehavior.NEVER,
                request_parameters={
                    "integration.request.header.Content-Type": "'application/x-www-form-urlencoded'"
                },
                request_templates={"application/json": SEND_MESSAGE_TEMPLATE},
                integration_responses=[
                    apigw.IntegrationResponse(status_code="200"),
                    apigw.IntegrationResponse(
                        status_code="500",
                        selection_pattern="500",
                        response_templates={
                            "application/json": '{"message": "Webhook could not be queued"}'
                        },
                    ),
                ],
            ),
        )

        self.api.root.add_method(
            "POST",
            sqs_integration,
            method_responses=[
                apigw.MethodResponse(status_code="200"),
                apigw.MethodResponse(status_code="500"),
            ],
        )

    @property
    def url(self) -> str:
        """Return the invoke URL of the deployed stage"""
        return self.api.url


class HttpApiToSqs(Construct):
    """
    HTTP API (v2) whose POST route sends the request body to an SQS queue
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        api_name: str,
        queue: sqs.IQueue,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.api = apigwv2.HttpApi(
            self,
            "HttpApi",
            api_name=api_name,
            description=f"Webhook ingress - {api_name}",
            create_default_stage=False,
        )

        self.stage = apigwv2.HttpStage(
            self,
            "DefaultStage",
            http_api=self.api,
            stage_name="$default",
            auto_deploy=True,
            throttle=apigwv2.ThrottleSettings(
                rate_limit=THROTTLE_RATE_LIMIT,
                burst_limit=THROTTLE_BURST_LIMIT,
            ),
        )

        # The integration creates its own role with sqs:SendMessage on the queue
        self.api.add_routes(
            path="/",
            methods=[apigwv2.HttpMethod.POST],
            integration=integrations.HttpSqsIntegration(
                "SendMessageIntegration", queue=queue
            ),
        )

    @property
    def url(self) -> str:
        return self.stage.url
