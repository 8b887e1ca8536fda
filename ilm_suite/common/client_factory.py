"""
S3 client factory.

Provides the boto3 client bound to the server under test. Path-style
addressing is forced since test servers are usually reached by IP or a
single host name.
"""

from __future__ import annotations

import logging
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ilm_suite.common.config import SuiteConfig
from ilm_suite.common.exceptions import ServerConnectionError


def create_s3_client(
    config: SuiteConfig,
    aws_access_key_id: Optional[str] = None,
    aws_secret_access_key: Optional[str] = None,
):
    """
    Create an S3 boto3 client for the configured endpoint.

    Args:
        config: Suite configuration holding endpoint, region and credentials
        aws_access_key_id: Optional override (used to build a client with bogus credentials)
        aws_secret_access_key: Optional override paired with ``aws_access_key_id``

    Returns:
        boto3.client: Configured S3 client
    """
    client_config = Config(
        s3={"addressing_style": "path"},
        retries={"max_attempts": 3, "mode": "standard"},
    )
    return boto3.client(
        "s3",
        endpoint_url=config.endpoint_url,
        region_name=config.region,
        aws_access_key_id=aws_access_key_id or config.access_key,
        aws_secret_access_key=aws_secret_access_key or config.secret_key,
        config=client_config,
    )


def connect(config: SuiteConfig):
    """
    Create the S3 client and verify the server answers.

    Raises:
        ServerConnectionError: If the server cannot be reached or rejects the credentials
    """
    s3 = create_s3_client(config)
    try:
        s3.list_buckets()
    except (BotoCoreError, ClientError) as exc:
        raise ServerConnectionError(config.endpoint_url, exc) from exc
    logging.info("Connected to %s", config.endpoint_url)
    return s3


__all__ = ["create_s3_client", "connect"]
