"""Unit tests for LocalObjectStore."""

import pytest

from s3stream._errors import ChecksumMismatchError
from s3stream.buffers import SimpleBufferPool
from s3stream.checksum import content_md5
from s3stream.session import CompletedPart
from s3stream.store import LocalObjectStore
from s3stream.writer import S3OutputStream, StoreLimits


@pytest.fixture
def local_store(tmp_path) -> LocalObjectStore:
    return LocalObjectStore(tmp_path / "store")


class TestLocalObjectStore:
    """Tests for the filesystem store."""

    def test_default_base_dir_is_temporary(self) -> None:
        """Test that the store defaults to a temporary directory."""
        store = LocalObjectStore()
        try:
            assert store.base_dir.is_dir()
            assert store.base_dir.name.startswith("s3stream-")
        finally:
            store.cleanup()
        assert not store.base_dir.exists()

    def test_put_object(self, local_store) -> None:
        """Test that put_object writes the bytes under bucket/key."""
        location = local_store.put_object(
            "bucket", "a/b.txt", memoryview(b"hello"), content_md5(b"hello")
        )

        assert location == str(local_store.base_dir / "bucket" / "a" / "b.txt")
        assert (local_store.base_dir / "bucket" / "a" / "b.txt").read_bytes() == b"hello"
        assert local_store.object_exists("bucket", "a/b.txt")

    def test_put_with_wrong_checksum_raises(self, local_store) -> None:
        """Test that a put with a wrong Content-MD5 is rejected."""
        with pytest.raises(ChecksumMismatchError):
            local_store.put_object(
                "bucket", "k", memoryview(b"hello"), content_md5(b"other")
            )
        assert not local_store.object_exists("bucket", "k")

    def test_multipart_assembles_parts_in_order(self, local_store) -> None:
        """Test that complete concatenates parts in part order."""
        upload_id = local_store.start_session("bucket", "k")
        tag2 = local_store.upload_part("bucket", "k", upload_id, 2, memoryview(b"world"))
        tag1 = local_store.upload_part("bucket", "k", upload_id, 1, memoryview(b"hello "))

        assert not local_store.object_exists("bucket", "k")
        local_store.complete_session(
            "bucket", "k", upload_id, [CompletedPart(1, tag1), CompletedPart(2, tag2)]
        )

        assert (local_store.base_dir / "bucket" / "k").read_bytes() == b"hello world"
        assert local_store.pending_uploads() == []

    def test_part_tag_is_quoted_md5(self, local_store) -> None:
        """Test that a part's tag is its quoted hex MD5."""
        upload_id = local_store.start_session("bucket", "k")
        tag = local_store.upload_part("bucket", "k", upload_id, 1, memoryview(b""))
        assert tag == '"d41d8cd98f00b204e9800998ecf8427e"'

    def test_part_with_wrong_checksum_raises(self, local_store) -> None:
        """Test that a part with a wrong Content-MD5 is rejected."""
        upload_id = local_store.start_session("bucket", "k")
        with pytest.raises(ChecksumMismatchError):
            local_store.upload_part(
                "bucket", "k", upload_id, 1, memoryview(b"data"), content_md5(b"else")
            )

    def test_abort_discards_parts(self, local_store) -> None:
        """Test that abort removes the staged parts."""
        upload_id = local_store.start_session("bucket", "k")
        local_store.upload_part("bucket", "k", upload_id, 1, memoryview(b"data"))
        assert local_store.pending_uploads() == [upload_id]

        local_store.abort_session("bucket", "k", upload_id)

        assert local_store.pending_uploads() == []
        assert not local_store.object_exists("bucket", "k")

    def test_unknown_upload_raises(self, local_store) -> None:
        """Test that parts for an unknown upload are rejected."""
        with pytest.raises(FileNotFoundError, match="No such upload"):
            local_store.upload_part("bucket", "k", "missing", 1, memoryview(b"x"))
        with pytest.raises(FileNotFoundError):
            local_store.abort_session("bucket", "k", "missing")

    def test_failed_complete_leaves_no_object(self, local_store) -> None:
        """Test that a complete naming a missing part creates no object."""
        upload_id = local_store.start_session("bucket", "k")
        tag = local_store.upload_part("bucket", "k", upload_id, 1, memoryview(b"data"))

        with pytest.raises(FileNotFoundError):
            local_store.complete_session(
                "bucket", "k", upload_id, [CompletedPart(1, tag), CompletedPart(2, '"x"')]
            )

        assert not local_store.object_exists("bucket", "k")
        local_store.abort_session("bucket", "k", upload_id)
        assert local_store.pending_uploads() == []

    def test_failed_complete_keeps_existing_object(self, local_store) -> None:
        """Test that a failed complete does not touch an existing object."""
        local_store.put_object("bucket", "k", memoryview(b"original"))
        upload_id = local_store.start_session("bucket", "k")
        tag = local_store.upload_part("bucket", "k", upload_id, 1, memoryview(b"new"))

        with pytest.raises(FileNotFoundError):
            local_store.complete_session(
                "bucket", "k", upload_id, [CompletedPart(1, tag), CompletedPart(2, '"x"')]
            )

        assert (local_store.base_dir / "bucket" / "k").read_bytes() == b"original"

    def test_put_object_leaves_no_scratch_files(self, local_store) -> None:
        """Test that put_object cleans up its temporary file."""
        local_store.put_object("bucket", "k", memoryview(b"first"))
        local_store.put_object("bucket", "k", memoryview(b"second"))

        assert (local_store.base_dir / "bucket" / "k").read_bytes() == b"second"
        assert list((local_store.base_dir / ".uploads").iterdir()) == []


class TestStreamingToLocalStore:
    """S3OutputStream on top of the filesystem store."""

    def test_multipart_stream(self, local_store) -> None:
        """Test a multipart stream into the filesystem store."""
        limits = StoreLimits(min_part_size=5, max_part_size=1024, max_single_put_size=1024)
        data = bytes(range(256)) * 3
        stream = S3OutputStream(
            local_store,
            "bucket",
            "out.bin",
            max_local_cache=64,
            limits=limits,
            buffer_pool=SimpleBufferPool(),
        )
        for i in range(0, len(data), 50):
            stream.write(data[i : i + 50])
        stream.close()

        assert stream.parts_uploaded == 24
        assert (local_store.base_dir / "bucket" / "out.bin").read_bytes() == data
        assert local_store.pending_uploads() == []

    def test_aborted_stream_leaves_no_object(self, local_store) -> None:
        """Test that an aborted stream creates no object."""
        limits = StoreLimits(min_part_size=5, max_part_size=1024, max_single_put_size=1024)

        with pytest.raises(KeyboardInterrupt):
            with S3OutputStream(
                local_store,
                "bucket",
                "out.bin",
                max_local_cache=20,
                limits=limits,
                buffer_pool=SimpleBufferPool(),
            ) as stream:
                stream.write(b"x" * 25)
                raise KeyboardInterrupt

        assert not local_store.object_exists("bucket", "out.bin")
        assert local_store.pending_uploads() == []
