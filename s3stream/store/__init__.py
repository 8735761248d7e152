"""Store module for s3stream object storage backends.

This module provides the backends a stream uploads into:
- LocalObjectStore: Local filesystem storage for development/testing
- S3ObjectStore: AWS S3 (or any S3-compatible endpoint) via boto3
"""

from s3stream.store.local import LocalObjectStore  # noqa: E402, F401
from s3stream.store.protocol import ObjectStoreClient  # noqa: E402, F401
from s3stream.store.s3 import S3ObjectStore  # noqa: E402, F401

__all__ = ["ObjectStoreClient", "LocalObjectStore", "S3ObjectStore"]
