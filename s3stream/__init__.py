"""s3stream - stream data of unknown size into S3 with bounded memory."""

from s3stream._errors import (
    ChecksumMismatchError,
    ConfigurationError,
    InvalidStateTransition,
    ObjectAlreadyExistsError,
    PipelineClosedError,
    S3StreamError,
    StreamClosedError,
    UploadAbortedError,
)
from s3stream.buffers import DEFAULT_BUFFER_POOL, ChunkBuffer, SimpleBufferPool
from s3stream.pipeline import UploadPipeline
from s3stream.session import SessionState, UploadSession
from s3stream.store import LocalObjectStore, ObjectStoreClient, S3ObjectStore
from s3stream.writer import S3_LIMITS, S3OutputStream, StoreLimits, open_stream

__version__ = "0.1.0"

__all__ = [
    "ChecksumMismatchError",
    "ChunkBuffer",
    "ConfigurationError",
    "DEFAULT_BUFFER_POOL",
    "InvalidStateTransition",
    "LocalObjectStore",
    "ObjectAlreadyExistsError",
    "ObjectStoreClient",
    "PipelineClosedError",
    "S3ObjectStore",
    "S3OutputStream",
    "S3StreamError",
    "S3_LIMITS",
    "SessionState",
    "SimpleBufferPool",
    "StoreLimits",
    "StreamClosedError",
    "UploadAbortedError",
    "UploadPipeline",
    "UploadSession",
    "open_stream",
]
