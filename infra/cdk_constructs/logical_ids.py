"""
Logical ID prefixing for stacks deployed side by side in one account
"""

import re
from typing import Optional

import aws_cdk as cdk
from constructs import Construct

SERVICE_PREFIX = "IntercomWebhookHandler"

_LOGICAL_ID_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9]*$")


class LogicalIdPrefixer:
    """
    Rewrites an allocated logical ID by prepending a fixed prefix
    """

    def __init__(self, prefix: str = SERVICE_PREFIX) -> None:
        if not _LOGICAL_ID_PATTERN.match(prefix):
            raise ValueError(f"Logical ID prefix must be alphanumeric: {prefix!r}")
        self.prefix = prefix

    def __call__(self, logical_id: str) -> str:
        return f"{self.prefix}{logical_id}"


class PrefixedStack(cdk.Stack):
    """
    Stack whose logical IDs pass through a LogicalIdPrefixer

    The default allocator runs first, so allocation order is unchanged and only
    the text of each ID is rewritten. Pass ``logical_ids=None`` to keep the
    framework's IDs as they are.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        logical_ids: Optional[LogicalIdPrefixer] = None,
        **kwargs,
    ) -> None:
        # Read by _allocate_logical_id, so set before the stack initializes
        self._logical_ids = logical_ids
        super().__init__(scope, construct_id, **kwargs)

    def _allocate_logical_id(self, cfn_element: cdk.CfnElement) -> str:
        logical_id = super()._allocate_logical_id(cfn_element)
        if self._logical_ids is None:
            return logical_id
        return self._logical_ids(logical_id)
