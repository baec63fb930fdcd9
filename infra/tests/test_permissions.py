"""
Tests for least-privilege grants
"""

import aws_cdk as cdk
import aws_cdk.assertions as assertions
import pytest

from cdk_constructs.naming import NameGenerator
from stacks.config import StackVariant
from stacks.graph import IngressKind, ResourceGraphBuilder
from stacks.permissions import Capability, PermissionGrant, PermissionGrantor
from stacks.webhook_stack import build_stack

SQS_CONSUME_ACTIONS = {
    "sqs:ReceiveMessage",
    "sqs:ChangeMessageVisibility",
    "sqs:GetQueueUrl",
    "sqs:DeleteMessage",
    "sqs:GetQueueAttributes",
}


def _as_list(value):
    return value if isinstance(value, list) else [value]


def _handler_policy_actions(template):
    """Collect every action in inline policies attached to the handler's role"""
    (function,) = template.find_resources("AWS::Lambda::Function").values()
    role_id = function["Properties"]["Role"]["Fn::GetAtt"][0]

    actions = set()
    for policy in template.find_resources("AWS::IAM::Policy").values():
        if {"Ref": role_id} not in policy["Properties"]["Roles"]:
            continue
        for statement in policy["Properties"]["PolicyDocument"]["Statement"]:
            assert statement["Effect"] == "Allow"
            actions.update(_as_list(statement["Action"]))
    return actions


def _is_put_object_action(action):
    return action.startswith("s3:PutObject") or action == "s3:Abort*"


def _grantor(make_app, make_props):
    stack = cdk.Stack(make_app(), "TestStack")
    builder = ResourceGraphBuilder(stack, NameGenerator("stage"), make_props())
    return stack, builder, PermissionGrantor(builder)


@pytest.mark.parametrize(
    "variant",
    [StackVariant.API_GATEWAY_QUEUE_FUNCTION_BUCKET, StackVariant.QUEUE_FUNCTION_BUCKET],
)
def test_handler_permissions_are_exactly_consume_and_put(make_app, make_props, variant):
    """Test the handler can consume from the queue and put to the bucket, nothing more"""
    stack = build_stack(make_app(), "Stage", make_props(variant=variant))
    template = assertions.Template.from_stack(stack)

    actions = _handler_policy_actions(template)

    assert SQS_CONSUME_ACTIONS <= actions
    assert "s3:PutObject" in actions
    assert all(
        action in SQS_CONSUME_ACTIONS or _is_put_object_action(action)
        for action in actions
    ), actions

    assert set(stack.grantor.grants_for(stack.handler)) == {
        PermissionGrant("Handler", "InputQueue", Capability.CONSUME_MESSAGES),
        PermissionGrant("Handler", "OutputBucket", Capability.PUT_OBJECT),
    }


def test_http_api_variant_handler_only_consumes(make_app, make_props):
    stack = build_stack(
        make_app(), "Stage", make_props(variant=StackVariant.QUEUE_FUNCTION_HTTP_API)
    )
    template = assertions.Template.from_stack(stack)

    actions = _handler_policy_actions(template)
    assert actions == SQS_CONSUME_ACTIONS
    assert stack.grantor.grants_for(stack.handler) == (
        PermissionGrant("Handler", "InputQueue", Capability.CONSUME_MESSAGES),
    )


def test_rest_ingress_role_can_send_messages(make_app, make_props):
    stack = build_stack(make_app(), "Stage", make_props())
    template = assertions.Template.from_stack(stack)

    template.has_resource_properties(
        "AWS::IAM::Role",
        {
            "AssumeRolePolicyDocument": {
                "Statement": [
                    assertions.Match.object_like(
                        {"Principal": {"Service": "apigateway.amazonaws.com"}}
                    )
                ]
            }
        },
    )
    template.has_resource_properties(
        "AWS::IAM::Policy",
        {
            "PolicyDocument": {
                "Statement": assertions.Match.array_with(
                    [
                        assertions.Match.object_like(
                            {
                                "Effect": "Allow",
                                "Action": assertions.Match.array_with(
                                    ["sqs:SendMessage"]
                                ),
                            }
                        )
                    ]
                )
            }
        },
    )

    assert "sqs:SendMessage" not in _handler_policy_actions(template)


def test_grant_is_idempotent(make_app, make_props):
    """Test repeating a grant adds nothing to the template or the record"""
    stack, builder, grantor = _grantor(make_app, make_props)
    queue = builder.add_queue()
    handler = builder.add_function(queue)

    first = grantor.grant(handler, queue, Capability.CONSUME_MESSAGES)
    before = assertions.Template.from_stack(stack).to_json()
    second = grantor.grant(handler, queue, Capability.CONSUME_MESSAGES)

    assert first == second
    assert grantor.grants == (first,)
    assert assertions.Template.from_stack(stack).to_json() == before


def test_grants_are_order_independent(make_app, make_props):
    def policy_actions(order):
        stack, builder, grantor = _grantor(make_app, make_props)
        bucket = builder.add_bucket()
        queue = builder.add_queue()
        handler = builder.add_function(queue, bucket=bucket)
        requests = [
            (queue, Capability.CONSUME_MESSAGES),
            (bucket, Capability.PUT_OBJECT),
        ]
        for grantor_handle, capability in order(requests):
            grantor.grant(handler, grantor_handle, capability)
        return (
            set(grantor.grants),
            _handler_policy_actions(assertions.Template.from_stack(stack)),
        )

    assert policy_actions(lambda r: r) == policy_actions(lambda r: list(reversed(r)))


def test_grant_rejects_unsupported_capability(make_app, make_props):
    _, builder, grantor = _grantor(make_app, make_props)
    bucket = builder.add_bucket()
    queue = builder.add_queue()
    handler = builder.add_function(queue, bucket=bucket)

    with pytest.raises(ValueError):
        grantor.grant(handler, bucket, Capability.CONSUME_MESSAGES)

    assert grantor.grants == ()


def test_grant_rejects_http_ingress_without_role(make_app, make_props):
    _, builder, grantor = _grantor(make_app, make_props)
    queue = builder.add_queue()
    ingress = builder.add_ingress(queue, IngressKind.HTTP_API)

    with pytest.raises(ValueError):
        grantor.grant(ingress, queue, Capability.SEND_MESSAGES)
