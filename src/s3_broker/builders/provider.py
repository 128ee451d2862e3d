"""Builder for the cloud provider client."""

from __future__ import annotations

import os

from ..config import Config
from ..services.aws.client import AWSProvider


def create_provider_from_config(config: Config) -> AWSProvider:
    """Create an AWS provider from broker configuration.

    Credentials come from ``AWS_ACCESS_KEY_ID`` / ``AWS_SECRET_ACCESS_KEY``
    when set, otherwise from boto3's default credential chain.

    Args:
        config: Broker configuration

    Returns:
        Configured AWSProvider instance
    """
    return AWSProvider(
        region=config.region,
        endpoint=config.s3_endpoint,
        iam_endpoint=config.iam_endpoint,
        access_key=os.getenv("AWS_ACCESS_KEY_ID"),
        secret_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
        session_token=os.getenv("AWS_SESSION_TOKEN"),
        timeout=config.request_timeout,
    )
