"""AWS client factory functions for s3stream."""

import os
from typing import Any

import boto3


def get_s3_client(endpoint: str = "", region: str = "") -> Any:
    """Get S3 client, falling back to the AWS_ENDPOINT_URL env var for the endpoint."""
    kwargs: dict[str, str] = {}
    if endpoint := endpoint or os.environ.get("AWS_ENDPOINT_URL", ""):
        kwargs["endpoint_url"] = endpoint
    if region:
        kwargs["region_name"] = region
    return boto3.client("s3", **kwargs)
