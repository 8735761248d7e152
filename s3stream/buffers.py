"""Reusable byte buffers and the pool that recycles them.

A ChunkBuffer behaves like a write-then-read byte region: the writer appends
up to ``limit`` bytes, ``flip()`` turns the written bytes into the readable
region, and ``clear()`` makes the whole buffer writable again. Only the
readable region is ever handed to a store, so bytes left over from an earlier
use of the buffer never leak into an upload.
"""

from __future__ import annotations

import io
import threading
from typing import Protocol

ALLOCATION_ALIGNMENT = 1024


class ChunkBuffer:
    """Fixed-capacity byte region with a write cursor and a readable limit.

    Attributes:
        capacity: Number of bytes allocated for this buffer.
        position: Write cursor while filling; read cursor after ``flip()``.
        limit: First index that may not be written (filling) or read (flipped).
    """

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self.position = 0
        self.limit = capacity
        self._data = bytearray(capacity)

    def __repr__(self) -> str:
        return (
            f"ChunkBuffer(capacity={self.capacity}, position={self.position}, "
            f"limit={self.limit})"
        )

    def clear(self, limit: int | None = None) -> None:
        """Make the buffer writable from the start, up to ``limit`` bytes."""
        self.position = 0
        self.limit = self.capacity if limit is None else min(limit, self.capacity)

    def flip(self) -> None:
        """Turn the bytes written so far into the readable region."""
        self.limit = self.position
        self.position = 0

    def remaining(self) -> int:
        return self.limit - self.position

    def has_remaining(self) -> bool:
        return self.position < self.limit

    def put(self, data: bytes | bytearray | memoryview) -> int:
        """Copy as much of ``data`` as fits and return the number of bytes taken."""
        view = memoryview(data).cast("B")
        n = min(len(view), self.remaining())
        if n:
            self._data[self.position : self.position + n] = view[:n]
            self.position += n
        return n

    def readable(self) -> memoryview:
        """Zero-copy view of the readable region."""
        return memoryview(self._data)[self.position : self.limit]


class BufferReader(io.RawIOBase):
    """Seekable, read-only file object over a memoryview.

    Lets HTTP clients stream a buffer's contents without copying them into a
    new bytes object first.
    """

    def __init__(self, view: memoryview) -> None:
        super().__init__()
        self._view = view
        self._offset = 0

    def __len__(self) -> int:
        return len(self._view)

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def readinto(self, b) -> int:  # type: ignore[no-untyped-def]
        n = max(0, min(len(b), len(self._view) - self._offset))
        if n:
            b[:n] = self._view[self._offset : self._offset + n]
            self._offset += n
        return n

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        if whence == io.SEEK_SET:
            target = offset
        elif whence == io.SEEK_CUR:
            target = self._offset + offset
        elif whence == io.SEEK_END:
            target = len(self._view) + offset
        else:
            raise ValueError(f"Invalid whence: {whence}")
        if target < 0:
            raise ValueError(f"Negative seek position {target}")
        self._offset = target
        return self._offset

    def tell(self) -> int:
        return self._offset


class BufferPool(Protocol):
    """Hands out reusable buffers; implementations must be thread-safe."""

    def acquire(self, min_size: int) -> ChunkBuffer:
        """Return a cleared buffer with at least ``min_size`` bytes of capacity."""
        ...

    def release(self, buffer: ChunkBuffer) -> None:
        """Take a buffer back. Callers must not touch it afterwards."""
        ...


def _aligned_size(min_size: int) -> int:
    """Round up to the next multiple of ALLOCATION_ALIGNMENT (at least one)."""
    blocks = max(1, -(-min_size // ALLOCATION_ALIGNMENT))
    return blocks * ALLOCATION_ALIGNMENT


class SimpleBufferPool:
    """Keeps up to ``max_spare_buffers`` released buffers for reuse.

    ``acquire`` hands out the smallest spare that is large enough, or allocates
    a new buffer rounded up to a multiple of 1 KiB. Buffers released while the
    pool is full are dropped and left to the garbage collector.
    """

    def __init__(self, max_spare_buffers: int = 2) -> None:
        if max_spare_buffers < 0:
            raise ValueError("max_spare_buffers must be non-negative")
        self.max_spare_buffers = max_spare_buffers
        self._spares: list[ChunkBuffer] = []
        self._lock = threading.Lock()

    @property
    def spare_count(self) -> int:
        with self._lock:
            return len(self._spares)

    def acquire(self, min_size: int) -> ChunkBuffer:
        with self._lock:
            fitting = [b for b in self._spares if b.capacity >= min_size]
            if fitting:
                buffer = min(fitting, key=lambda b: b.capacity)
                self._spares.remove(buffer)
                buffer.clear()
                return buffer
        return ChunkBuffer(_aligned_size(min_size))

    def release(self, buffer: ChunkBuffer) -> None:
        with self._lock:
            if any(spare is buffer for spare in self._spares):
                return
            if len(self._spares) < self.max_spare_buffers:
                buffer.clear()
                self._spares.append(buffer)


DEFAULT_BUFFER_POOL = SimpleBufferPool()
