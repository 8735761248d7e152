"""Shared test utilities."""

import os
import threading
import time

import pytest

from s3stream.buffers import SimpleBufferPool


@pytest.fixture(autouse=True)
def clean_aws_env():
    """Remove AWS_ENDPOINT_URL to prevent tests from hitting a real endpoint."""
    original = os.environ.get("AWS_ENDPOINT_URL")
    os.environ.pop("AWS_ENDPOINT_URL", None)
    yield
    if original:
        os.environ["AWS_ENDPOINT_URL"] = original


class RecordingStore:
    """In-memory ObjectStoreClient that records every call made to it.

    Failures are injected through the constructor; they raise ConnectionError
    like a transport failure would.
    """

    def __init__(
        self,
        fail_start: bool = False,
        fail_part: int | None = None,
        fail_complete: bool = False,
        fail_abort: bool = False,
        part_delay: float = 0.0,
        existing: set[tuple[str, str]] | None = None,
    ) -> None:
        self.fail_start = fail_start
        self.fail_part = fail_part
        self.fail_complete = fail_complete
        self.fail_abort = fail_abort
        self.part_delay = part_delay
        self.existing = existing or set()
        self.calls: list[tuple] = []
        self.parts: dict[int, bytes] = {}
        self.part_checksums: dict[int, str | None] = {}
        self.part_threads: set[str] = set()
        self.completed_parts: list = []
        self.objects: dict[tuple[str, str], bytes] = {}
        self.put_checksums: list[str | None] = []
        self.gate: threading.Event | None = None
        self._lock = threading.Lock()
        self._uploads = 0

    def _record(self, *call) -> None:
        with self._lock:
            self.calls.append(call)

    @property
    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]

    def start_session(self, bucket, key):
        self._record("start_session", bucket, key)
        if self.fail_start:
            raise ConnectionError("simulated start failure")
        self._uploads += 1
        return f"upload-{self._uploads}"

    def upload_part(self, bucket, key, upload_id, part_number, data, checksum=None):
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.part_delay:
            time.sleep(self.part_delay)
        self._record("upload_part", bucket, key, upload_id, part_number, len(data))
        self.part_threads.add(threading.current_thread().name)
        if part_number == self.fail_part:
            raise ConnectionError(f"simulated failure of part {part_number}")
        self.parts[part_number] = bytes(data)
        self.part_checksums[part_number] = checksum
        return f'"etag-{part_number}"'

    def complete_session(self, bucket, key, upload_id, parts):
        self._record("complete_session", bucket, key, upload_id)
        if self.fail_complete:
            raise ConnectionError("simulated complete failure")
        self.completed_parts = list(parts)
        self.objects[(bucket, key)] = b"".join(
            self.parts[part.part_number] for part in parts
        )
        return f"https://store.example/{bucket}/{key}"

    def abort_session(self, bucket, key, upload_id):
        self._record("abort_session", bucket, key, upload_id)
        if self.fail_abort:
            raise ConnectionError("simulated abort failure")

    def put_object(self, bucket, key, data, checksum=None):
        self._record("put_object", bucket, key, len(data))
        self.objects[(bucket, key)] = bytes(data)
        self.put_checksums.append(checksum)
        return f"https://store.example/{bucket}/{key}"

    def object_exists(self, bucket, key):
        self._record("object_exists", bucket, key)
        return (bucket, key) in self.existing or (bucket, key) in self.objects


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def make_store():
    """Factory for RecordingStore instances with injected failures."""
    return RecordingStore


@pytest.fixture
def pool() -> SimpleBufferPool:
    """A private pool so tests do not share buffers through the default one."""
    return SimpleBufferPool()
