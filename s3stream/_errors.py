"""Centralized error classes for s3stream."""


class S3StreamError(Exception):
    """Base class for all s3stream errors."""

    pass


class ConfigurationError(S3StreamError, ValueError):
    """Raised when a stream or store is configured with invalid values."""

    pass


class StreamClosedError(S3StreamError, ValueError):
    """Raised when writing to or flushing a stream that has been closed."""

    pass


class PipelineClosedError(StreamClosedError):
    """Raised when queueing work on a pipeline that no longer accepts it."""

    pass


class UploadAbortedError(S3StreamError):
    """Raised for parts that were still queued when their upload was aborted."""

    pass


class InvalidStateTransition(S3StreamError, RuntimeError):
    """Raised when an upload session is moved along an illegal edge."""

    def __init__(self, current: object, target: object) -> None:
        super().__init__(f"Cannot move upload session from {current} to {target}")
        self.current = current
        self.target = target


class ObjectAlreadyExistsError(S3StreamError, FileExistsError):
    """Raised when the target object exists and overwriting is disabled."""

    def __init__(self, bucket: str, key: str) -> None:
        super().__init__(f"The object s3://{bucket}/{key} already exists")
        self.bucket = bucket
        self.key = key


class ChecksumMismatchError(S3StreamError):
    """Raised by a store when received data does not match its Content-MD5."""

    pass


def add_suppressed(error: BaseException, suppressed: BaseException) -> None:
    """Attach a cleanup failure to the primary error without replacing it."""
    error.add_note(f"While cleaning up, another error occurred: {suppressed!r}")
    previous = getattr(error, "suppressed", [])
    error.suppressed = [*previous, suppressed]  # type: ignore[attr-defined]
