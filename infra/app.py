#!/usr/bin/env python3
"""
Intercom webhook handler
Main CDK application entry point
"""

import sys
import os
sys.path.insert(0, os.path.dirname(__file__))

import aws_cdk as cdk
from stacks.config import load_config
from stacks.utils import setup_logger
from stacks.webhook_stack import build_stack

logger = setup_logger("app")


def main():
    app = cdk.App()

    # .env, CDK context and CDK_DEFAULT_* are read once, here
    config = load_config(app)
    logger.info(f"Synthesizing environments: {', '.join(config.environments)}")

    for environment_id in config.environments:
        props = config.props_for(environment_id)
        stack = build_stack(app, environment_id, props)

        cdk.Tags.of(stack).add("Project", "IntercomWebhookHandler")
        cdk.Tags.of(stack).add("Environment", props.api_env)
        cdk.Tags.of(stack).add("StackVariant", props.variant.value)

    app.synth()


if __name__ == "__main__":
    main()
