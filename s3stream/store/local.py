"""Local filesystem store implementation."""

from __future__ import annotations

import hashlib
import os
import shutil
import tempfile
import uuid
from pathlib import Path
from typing import TYPE_CHECKING

from s3stream._errors import ChecksumMismatchError
from s3stream.checksum import content_md5
from s3stream.store.protocol import ObjectStoreClient

if TYPE_CHECKING:
    from collections.abc import Sequence

    from s3stream.session import CompletedPart

_UPLOADS_DIR = ".uploads"
_ASSEMBLED_NAME = "object"


class LocalObjectStore(ObjectStoreClient):
    """File-based store implementing the ObjectStoreClient interface.

    Objects live at ``base_dir/bucket/key``. Multipart uploads stage each part
    under ``base_dir/.uploads/<upload_id>/`` and only assemble the final file
    on completion, so an aborted upload never leaves a visible object behind.
    """

    def __init__(self, base_dir: Path | None = None) -> None:
        self.base_dir = base_dir or Path(tempfile.mkdtemp(prefix="s3stream-"))
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _object_path(self, bucket: str, key: str) -> Path:
        return self.base_dir / bucket / key

    def _staging_dir(self, upload_id: str) -> Path:
        return self.base_dir / _UPLOADS_DIR / upload_id

    def _verify(self, data: memoryview, checksum: str | None) -> None:
        if checksum and content_md5(data) != checksum:
            raise ChecksumMismatchError(
                f"Content-MD5 {checksum} does not match the received data"
            )

    def start_session(self, bucket: str, key: str) -> str:
        upload_id = uuid.uuid4().hex
        self._staging_dir(upload_id).mkdir(parents=True)
        return upload_id

    def upload_part(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        part_number: int,
        data: memoryview,
        checksum: str | None = None,
    ) -> str:
        staging = self._staging_dir(upload_id)
        if not staging.is_dir():
            raise FileNotFoundError(f"No such upload: {upload_id}")
        self._verify(data, checksum)
        (staging / f"{part_number:05d}.part").write_bytes(data)
        return f'"{hashlib.md5(data, usedforsecurity=False).hexdigest()}"'

    def complete_session(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        parts: Sequence[CompletedPart],
    ) -> str:
        staging = self._staging_dir(upload_id)
        if not staging.is_dir():
            raise FileNotFoundError(f"No such upload: {upload_id}")
        # assemble next to the parts; the object only appears through the rename
        assembled = staging / _ASSEMBLED_NAME
        with assembled.open("wb") as out:
            for part in parts:
                with (staging / f"{part.part_number:05d}.part").open("rb") as src:
                    shutil.copyfileobj(src, out)
        path = self._object_path(bucket, key)
        path.parent.mkdir(parents=True, exist_ok=True)
        os.replace(assembled, path)
        shutil.rmtree(staging)
        return str(path)

    def abort_session(self, bucket: str, key: str, upload_id: str) -> None:
        staging = self._staging_dir(upload_id)
        if not staging.is_dir():
            raise FileNotFoundError(f"No such upload: {upload_id}")
        shutil.rmtree(staging)

    def put_object(
        self,
        bucket: str,
        key: str,
        data: memoryview,
        checksum: str | None = None,
    ) -> str:
        self._verify(data, checksum)
        path = self._object_path(bucket, key)
        path.parent.mkdir(parents=True, exist_ok=True)
        scratch = self.base_dir / _UPLOADS_DIR
        scratch.mkdir(parents=True, exist_ok=True)
        tmp = scratch / f"{uuid.uuid4().hex}.put"
        try:
            tmp.write_bytes(data)
            os.replace(tmp, path)
        finally:
            tmp.unlink(missing_ok=True)
        return str(path)

    def object_exists(self, bucket: str, key: str) -> bool:
        return self._object_path(bucket, key).is_file()

    def pending_uploads(self) -> list[str]:
        """Upload ids that were started but neither completed nor aborted."""
        uploads = self.base_dir / _UPLOADS_DIR
        if not uploads.exists():
            return []
        return sorted(p.name for p in uploads.iterdir() if p.is_dir())

    def cleanup(self) -> None:
        if self.base_dir.exists():
            shutil.rmtree(self.base_dir)
