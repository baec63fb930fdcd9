"""
Webhook input queue with dead letter queue construct
"""

from aws_cdk import aws_sqs as sqs, Duration
from constructs import Construct

# Receive attempts before a webhook message is parked in the DLQ
DEFAULT_MAX_RECEIVE_COUNT = 15


class WebhookQueue(Construct):
    """
    SQS queue buffering accepted webhook calls, backed by a dead letter queue
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        queue_name: str,
        dlq_name: str,
        visibility_timeout: Duration,
        max_receive_count: int = DEFAULT_MAX_RECEIVE_COUNT,
        **kwargs
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # Create Dead Letter Queue first
        self.dlq = sqs.Queue(
            self,
            "DeadLetterQueue",
            queue_name=dlq_name,
            encryption=sqs.QueueEncryption.SQS_MANAGED,
            enforce_ssl=True,
            # Keep failed webhooks around for investigation
            retention_period=Duration.days(14),
        )

        # Create main queue with DLQ redrive policy
        self.queue = sqs.Queue(
            self,
            "Queue",
            queue_name=queue_name,
            encryption=sqs.QueueEncryption.SQS_MANAGED,
            enforce_ssl=True,
            visibility_timeout=visibility_timeout,
            dead_letter_queue=sqs.DeadLetterQueue(
                max_receive_count=max_receive_count, queue=self.dlq
            ),
        )

    @property
    def queue_url(self) -> str:
        """Return the main queue URL"""
        return self.queue.queue_url

    def grant_send_messages(self, grantee):
        """Grant send message permissions to the main queue"""
        return self.queue.grant_send_messages(grantee)

    def grant_consume_messages(self, grantee):
        """Grant consume message permissions to the main queue"""
        return self.queue.grant_consume_messages(grantee)
