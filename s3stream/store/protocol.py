"""ObjectStoreClient protocol definition."""

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Sequence

    from s3stream.session import CompletedPart


class ObjectStoreClient(Protocol):
    """Protocol defining the remote operations a streaming upload needs.

    Both S3ObjectStore and LocalObjectStore implement this interface, so the
    upload pipeline and stream writer work against either backend. Every call
    names the target bucket and key because S3 identifies a multipart upload by
    bucket, key and upload id together.

    Implementations are free to raise their own transport errors; callers do
    not retry.
    """

    def start_session(self, bucket: str, key: str) -> str:
        """Start a multipart upload and return its upload id."""
        ...

    def upload_part(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        part_number: int,
        data: memoryview,
        checksum: str | None = None,
    ) -> str:
        """Upload one part and return the tag (ETag) the store assigned to it.

        ``checksum`` is a base64 Content-MD5 the store should verify.
        """
        ...

    def complete_session(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        parts: "Sequence[CompletedPart]",
    ) -> str:
        """Complete the upload from ``parts`` (sorted by number); return location."""
        ...

    def abort_session(self, bucket: str, key: str, upload_id: str) -> None:
        """Abort the upload and discard its parts."""
        ...

    def put_object(
        self,
        bucket: str,
        key: str,
        data: memoryview,
        checksum: str | None = None,
    ) -> str:
        """Store a small object in one request and return its location."""
        ...

    def object_exists(self, bucket: str, key: str) -> bool:
        """Whether an object is already stored under ``key``."""
        ...
