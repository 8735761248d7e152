"""MD5 checksums in the form S3 expects for the Content-MD5 header."""

from __future__ import annotations

import base64
import hashlib
from collections.abc import Callable

ChecksumProvider = Callable[[memoryview], str]


def md5_digest(data: bytes | bytearray | memoryview) -> bytes:
    """Raw MD5 digest of ``data``."""
    return hashlib.md5(data, usedforsecurity=False).digest()


def content_md5(data: bytes | bytearray | memoryview) -> str:
    """Base64-encoded MD5 digest, the value of a Content-MD5 header."""
    return base64.b64encode(md5_digest(data)).decode("ascii")

