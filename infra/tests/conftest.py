"""
Shared fixtures for the webhook handler stack tests
"""

import os

import aws_cdk as cdk
import pytest

from stacks.config import WebhookStackProps

HANDLER_FIXTURE = os.path.join(os.path.dirname(__file__), "fixtures", "handler")

# Docker bundling is skipped; tests only inspect the synthesized templates
SKIP_BUNDLING = {"aws:cdk:bundling-stacks": []}


@pytest.fixture
def handler_code_path():
    return HANDLER_FIXTURE


@pytest.fixture
def make_app():
    """Return a factory for apps that skip asset bundling"""

    def _make_app(**context):
        return cdk.App(context={**SKIP_BUNDLING, **context})

    return _make_app


@pytest.fixture
def make_props():
    """Return a factory for stack props pointing at the fixture crate"""

    def _make_props(api_env="stage", **overrides):
        overrides.setdefault("handler_code_path", HANDLER_FIXTURE)
        return WebhookStackProps(api_env=api_env, **overrides)

    return _make_props
