"""
Least-privilege grants between declared webhook pipeline resources
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Tuple, Type, Union

from aws_cdk import aws_iam as iam

from stacks.graph import (
    BucketHandle,
    EdgeKind,
    FunctionHandle,
    IngressHandle,
    QueueHandle,
    ResourceGraphBuilder,
    ResourceHandle,
)

Grantee = Union[FunctionHandle, IngressHandle]


class Capability(str, Enum):
    CONSUME_MESSAGES = "consume-messages"
    SEND_MESSAGES = "send-messages"
    PUT_OBJECT = "put-object"


@dataclass(frozen=True)
class PermissionGrant:
    grantee: str
    grantor: str
    capability: Capability


# (grantor handle type, capability) -> CDK grant helper
_GRANT_HELPERS: Dict[
    Tuple[Type[ResourceHandle], Capability],
    Callable[[ResourceHandle, iam.IGrantable], iam.Grant],
] = {
    (QueueHandle, Capability.CONSUME_MESSAGES): (
        lambda handle, grantee: handle.queue.grant_consume_messages(grantee)
    ),
    (QueueHandle, Capability.SEND_MESSAGES): (
        lambda handle, grantee: handle.queue.grant_send_messages(grantee)
    ),
    (BucketHandle, Capability.PUT_OBJECT): (
        lambda handle, grantee: handle.bucket.grant_put(grantee)
    ),
}


class PermissionGrantor:
    """
    Applies grants through the CDK grant helpers and records them

    Grants are additive. Repeating a grant is a no-op, so the order in which
    grants are requested does not change the result.
    """

    def __init__(self, builder: ResourceGraphBuilder) -> None:
        self._builder = builder
        self._grants: List[PermissionGrant] = []

    def grant(
        self, grantee: Grantee, grantor: ResourceHandle, capability: Capability
    ) -> PermissionGrant:
        self._builder.require(grantee)
        self._builder.require(grantor)

        record = PermissionGrant(grantee.resource_id, grantor.resource_id, capability)
        if record in self._grants:
            return record

        helper = _GRANT_HELPERS.get((type(grantor), capability))
        if helper is None:
            raise ValueError(
                f"{grantor.resource_id} cannot grant {capability.value}"
            )
        grantable = grantee.grantable
        if grantable is None:
            raise ValueError(f"{grantee.resource_id} has no principal to grant to")

        helper(grantor, grantable)
        self._grants.append(record)
        self._builder.graph.add_edge(
            grantor.resource_id,
            grantee.resource_id,
            EdgeKind.PERMISSION_GRANT,
            capability.value,
        )
        return record

    def grants_for(self, grantee: Grantee) -> Tuple[PermissionGrant, ...]:
        return tuple(g for g in self._grants if g.grantee == grantee.resource_id)

    @property
    def grants(self) -> Tuple[PermissionGrant, ...]:
        return tuple(self._grants)
