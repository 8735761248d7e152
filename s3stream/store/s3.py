"""S3 store implementation backed by boto3."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from botocore.exceptions import ClientError

from s3stream._aws import get_s3_client
from s3stream.buffers import BufferReader
from s3stream.store.protocol import ObjectStoreClient

if TYPE_CHECKING:
    from collections.abc import Sequence

    from s3stream.session import CompletedPart

_NOT_FOUND_CODES = ("404", "NoSuchKey", "NotFound")


class S3ObjectStore(ObjectStoreClient):
    """S3-based store implementing the ObjectStoreClient interface.

    Part and object bodies are streamed from the caller's buffer through a
    seekable reader, so no extra copy of a part is made before sending.
    """

    def __init__(self, client: Any = None, endpoint: str = "", region: str = "") -> None:
        self.endpoint = endpoint
        self._client = client if client is not None else get_s3_client(endpoint, region)

    def start_session(self, bucket: str, key: str) -> str:
        response = self._client.create_multipart_upload(Bucket=bucket, Key=key)
        return response["UploadId"]

    def upload_part(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        part_number: int,
        data: memoryview,
        checksum: str | None = None,
    ) -> str:
        kwargs: dict[str, Any] = {
            "Bucket": bucket,
            "Key": key,
            "UploadId": upload_id,
            "PartNumber": part_number,
            "Body": BufferReader(data),
            "ContentLength": len(data),
        }
        if checksum:
            kwargs["ContentMD5"] = checksum
        response = self._client.upload_part(**kwargs)
        return response["ETag"]

    def complete_session(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        parts: Sequence[CompletedPart],
    ) -> str:
        response = self._client.complete_multipart_upload(
            Bucket=bucket,
            Key=key,
            UploadId=upload_id,
            MultipartUpload={
                "Parts": [
                    {"ETag": part.etag, "PartNumber": part.part_number}
                    for part in parts
                ]
            },
        )
        return response.get("Location") or f"s3://{bucket}/{key}"

    def abort_session(self, bucket: str, key: str, upload_id: str) -> None:
        self._client.abort_multipart_upload(Bucket=bucket, Key=key, UploadId=upload_id)

    def put_object(
        self,
        bucket: str,
        key: str,
        data: memoryview,
        checksum: str | None = None,
    ) -> str:
        kwargs: dict[str, Any] = {
            "Bucket": bucket,
            "Key": key,
            "Body": BufferReader(data),
            "ContentLength": len(data),
        }
        if checksum:
            kwargs["ContentMD5"] = checksum
        self._client.put_object(**kwargs)
        return f"s3://{bucket}/{key}"

    def object_exists(self, bucket: str, key: str) -> bool:
        try:
            self._client.head_object(Bucket=bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES:
                return False
            raise
        return True

    @staticmethod
    def _parse_url(url: str) -> tuple[str, str]:
        if not url.startswith("s3://"):
            raise ValueError(f"Invalid S3 URL: {url}. Must start with 's3://'")
        parts = url[5:].split("/", 1)
        bucket = parts[0]
        if not bucket:
            raise ValueError(f"Invalid S3 URL: {url}. Missing bucket")
        key = parts[1] if len(parts) > 1 else ""
        return bucket, key
