"""Integrity helpers: SHA-384 over an exact byte range of a stream."""

from __future__ import annotations

import hashlib
import hmac
from typing import BinaryIO

CHUNK_SIZE = 1024 * 1024


def sha384_range(stream: BinaryIO, start: int, length: int) -> bytes:
    """Return the SHA-384 digest of ``length`` bytes of *stream* from *start*.

    The stream position is left at ``start + length``. Raises ValueError if the
    stream ends early.
    """
    h = hashlib.sha384()
    stream.seek(start)
    remaining = length
    while remaining:
        chunk = stream.read(min(CHUNK_SIZE, remaining))
        if not chunk:
            raise ValueError(f"stream ended {remaining} bytes before the hashed range")
        h.update(chunk)
        remaining -= len(chunk)
    return h.digest()


def digests_match(expected: bytes, actual: bytes) -> bool:
    return hmac.compare_digest(expected, actual)
