"""Sequential-write stream that uploads to an object store as it is written.

Use this when the size of the data is not known upfront and buffering all of
it in memory is not an option, e.g. when streaming several GB from a Lambda.
The stream keeps two buffers: writes fill one while the other is uploaded as a
part of a multipart upload in the background. If the write buffer fills up
before the previous part has been acknowledged, ``write`` blocks until it is.
With the default settings at most ``max_local_cache`` bytes are held locally.

Closing the stream completes the upload, so ``close`` may block and raise any
error the store reported. Payloads that fit into a single buffer are sent with
one plain put instead of a multipart upload.

S3OutputStream is NOT thread safe; drive it from one thread. It can be wrapped
in ``io.TextIOWrapper`` for text output; note that closing the wrapper closes
the stream and therefore completes the upload.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, wait
from dataclasses import dataclass
from typing import TYPE_CHECKING

from s3stream._errors import (
    ConfigurationError,
    ObjectAlreadyExistsError,
    StreamClosedError,
    add_suppressed,
)
from s3stream.buffers import DEFAULT_BUFFER_POOL, BufferPool, ChunkBuffer
from s3stream.checksum import ChecksumProvider, content_md5
from s3stream.logging import UploadLogger
from s3stream.pipeline import QUEUE_DEPTH, UploadPipeline
from s3stream.store.protocol import ObjectStoreClient

if TYPE_CHECKING:
    from types import TracebackType

    from s3stream.config import StreamConfig
    from s3stream.session import CompletedPart, UploadSession

# Limits imposed by S3, see https://docs.aws.amazon.com/AmazonS3/latest/userguide/qfacts.html
MIN_UPLOAD_PART_SIZE = 5 * 1024 * 1024
MAX_UPLOAD_PART_SIZE = 5 * 1024 * 1024 * 1024
MAX_SINGLE_PUT_SIZE = 5 * 1024 * 1024 * 1024

# Largest region a single buffer may address
MAX_BUFFER_SIZE = 2**31 - 1

DEFAULT_MAX_LOCAL_CACHE = max(4 * MIN_UPLOAD_PART_SIZE, 50 * 1024 * 1024)


@dataclass(frozen=True)
class StoreLimits:
    """Size limits the target store enforces.

    Attributes:
        min_part_size: Smallest allowed part, except for the last one.
        max_part_size: Largest allowed part.
        max_single_put_size: Largest object accepted by a single put.
    """

    min_part_size: int = MIN_UPLOAD_PART_SIZE
    max_part_size: int = MAX_UPLOAD_PART_SIZE
    max_single_put_size: int = MAX_SINGLE_PUT_SIZE

    def __post_init__(self) -> None:
        if self.min_part_size <= 0:
            raise ConfigurationError("min_part_size must be positive")
        if self.max_part_size < self.min_part_size:
            raise ConfigurationError("max_part_size must not be below min_part_size")
        if self.max_single_put_size < 0:
            raise ConfigurationError("max_single_put_size must be non-negative")


S3_LIMITS = StoreLimits()


class S3OutputStream:
    """Writable stream into ``bucket``/``key`` of an object store.

    Args:
        client: Store to upload to.
        bucket: Target bucket.
        key: Target key.
        max_local_cache: Memory budget in bytes; split evenly between the two
            buffers. Must be at least twice the store's minimum part size.
        use_checksums: Send a Content-MD5 with every part/put. Turn this off
            if the CPU load matters more than end-to-end verification.
        buffer_pool: Where buffers come from and go back to. Pass your own to
            change allocation behaviour or share memory between streams.
        limits: Size limits of the store.
        overwrite: If False, refuse to start when the object already exists.
        queue_depth: Capacity of the upload pipeline's queue.
        checksum: Function computing the checksum sent with each upload.
        logger: Logger for upload lifecycle events.
    """

    def __init__(
        self,
        client: ObjectStoreClient,
        bucket: str,
        key: str,
        max_local_cache: int = DEFAULT_MAX_LOCAL_CACHE,
        use_checksums: bool = True,
        buffer_pool: BufferPool | None = None,
        limits: StoreLimits = S3_LIMITS,
        overwrite: bool = True,
        queue_depth: int = QUEUE_DEPTH,
        checksum: ChecksumProvider = content_md5,
        logger: logging.Logger | None = None,
    ) -> None:
        if max_local_cache < limits.min_part_size * 2:
            raise ConfigurationError(
                f"The local cache must be at least {limits.min_part_size * 2} bytes "
                f"(because single upload parts must be at least "
                f"{limits.min_part_size} bytes)"
            )
        if queue_depth < 1:
            raise ConfigurationError("queue_depth must be positive")

        self.client = client
        self.bucket = bucket
        self.key = key
        self.max_local_cache = max_local_cache
        self.use_checksums = use_checksums
        self.limits = limits
        self.buffer_size = min(
            max_local_cache // 2, MAX_BUFFER_SIZE, limits.max_part_size
        )
        self.bytes_written = 0
        self.location: str | None = None

        if not overwrite and client.object_exists(bucket, key):
            raise ObjectAlreadyExistsError(bucket, key)

        self._checksum = checksum
        self._log = UploadLogger(bucket, key, logger or logging.getLogger(__name__))
        self._pipeline = UploadPipeline(
            client,
            bucket,
            key,
            use_checksums=use_checksums,
            checksum=checksum,
            queue_depth=queue_depth,
            logger=logger,
        )
        self._pool: BufferPool | None = buffer_pool or DEFAULT_BUFFER_POOL
        # _active receives writes; _shadow belongs to the pipeline while
        # _in_flight is unresolved and is only swapped in by _hand_off
        self._active: ChunkBuffer | None = self._acquire()
        self._shadow: ChunkBuffer | None = self._acquire()
        self._in_flight: Future[CompletedPart] | None = None
        self._closed = False

    def __repr__(self) -> str:
        return f"S3OutputStream(s3://{self.bucket}/{self.key}, closed={self._closed})"

    def __enter__(self) -> S3OutputStream:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc is None:
            self.close()
            return
        try:
            self.abort()
        except Exception as abort_error:
            add_suppressed(exc, abort_error)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def parts_uploaded(self) -> int:
        """Number of parts handed to the upload pipeline."""
        return self._pipeline.parts_enqueued

    @property
    def session(self) -> UploadSession:
        return self._pipeline.session

    def writable(self) -> bool:
        return not self._closed

    # write-only and sequential, so io.TextIOWrapper can sit on top
    def readable(self) -> bool:
        return False

    def seekable(self) -> bool:
        return False

    def write(self, data: bytes | bytearray | memoryview) -> int:
        """Buffer ``data`` for upload; blocks while both buffers are in use."""
        if self._closed:
            raise StreamClosedError("Stream already closed.")

        view = memoryview(data).cast("B")
        total = len(view)
        while view:
            if not self._active.has_remaining():
                self._hand_off()
            n = self._active.put(view)
            view = view[n:]
            self.bytes_written += n
        return total

    def flush(self) -> None:
        """Upload the buffered data, but ONLY if it is enough for a part.

        Stores reject non-final parts below the minimum part size, so smaller
        amounts stay buffered.
        """
        if self._closed:
            raise StreamClosedError("Stream already closed.")

        if self._active.position >= self.limits.min_part_size:
            self._hand_off()

    def close(self) -> None:
        """Upload everything still buffered and complete the upload."""
        if self._closed:
            return

        # prevent any more data from being written
        self._closed = True

        try:
            self._wait_for_in_flight()
            remaining = self._active.position

            if (
                self._pipeline.parts_enqueued > 0
                or remaining > self.limits.max_single_put_size
            ):
                if remaining > 0:
                    self._hand_off(last_part=True)
                    self._wait_for_in_flight()
                self.location = self._pipeline.finalize().result()
            else:
                self._put_object()
        finally:
            self._release_buffers()

    def abort(self) -> None:
        """Close the stream without making the object visible."""
        if self._closed:
            return
        self._closed = True

        try:
            if self._in_flight is not None:
                # the part's own error, if any, already reached the writer
                wait([self._in_flight])
            self._pipeline.abort().result()
        finally:
            self._release_buffers()

    def _acquire(self) -> ChunkBuffer:
        buffer = self._pool.acquire(self.buffer_size)
        # pooled buffers may be larger than asked for
        buffer.clear(self.buffer_size)
        return buffer

    def _hand_off(self, last_part: bool = False) -> None:
        """Queue the write buffer for upload and switch to the other buffer.

        Blocks until the previous part has been acknowledged, since that part's
        buffer becomes the new write buffer. Only the last part may be smaller
        than the store's minimum part size.
        """
        n_bytes = self._active.position
        if n_bytes == 0:
            return

        if not last_part and n_bytes < self.limits.min_part_size:
            raise RuntimeError(
                f"Cannot upload - minimum part size is {self.limits.min_part_size} "
                f"bytes, got only {n_bytes}"
            )

        self._wait_for_in_flight()

        buffer = self._active
        self._active, self._shadow = self._shadow, buffer
        self._active.clear(self.buffer_size)

        buffer.flip()
        self._in_flight = self._pipeline.enqueue(buffer)

    def _wait_for_in_flight(self) -> None:
        if self._in_flight is not None:
            self._in_flight.result()

    def _put_object(self) -> None:
        buffer = self._active
        buffer.flip()
        data = buffer.readable()
        checksum = self._checksum(data) if self.use_checksums else None
        self.location = self.client.put_object(self.bucket, self.key, data, checksum)
        self._log.direct_put(len(data), self.location)

    def _release_buffers(self) -> None:
        pool = self._pool
        if pool is None:
            return
        for buffer in (self._active, self._shadow):
            if buffer is not None:
                pool.release(buffer)
        self._active = None
        self._shadow = None
        self._pool = None


def open_stream(
    url: str,
    config: StreamConfig | None = None,
    client: ObjectStoreClient | None = None,
    **kwargs: object,
) -> S3OutputStream:
    """Open a stream to an ``s3://bucket/key`` URL using ``config`` defaults.

    Keyword arguments are passed on to S3OutputStream and take precedence over
    the configuration.
    """
    from s3stream.config import StreamConfig
    from s3stream.store.s3 import S3ObjectStore

    bucket, key = S3ObjectStore._parse_url(url)
    if not key:
        raise ValueError(f"Invalid S3 URL: {url}. Missing key")

    config = config or StreamConfig()
    if client is None:
        client = S3ObjectStore(endpoint=config.aws_endpoint, region=config.aws_region)

    options: dict[str, object] = {
        "max_local_cache": config.max_local_cache,
        "use_checksums": config.use_checksums,
        "overwrite": config.overwrite,
        "queue_depth": config.queue_depth,
    }
    options.update(kwargs)
    return S3OutputStream(client, bucket, key, **options)  # type: ignore[arg-type]
