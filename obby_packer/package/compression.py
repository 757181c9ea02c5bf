"""Per-member compression policy.

Members larger than ``MIN_COMPRESSION_SIZE`` are deflated, and the deflated
form is kept only when it saves at least 10% (``COMPRESSION_TRADEOFF``).
Smaller or incompressible members are stored raw so loaders do not pay for
a pointless inflate.
"""

from __future__ import annotations

import zlib

MIN_COMPRESSION_SIZE = 1024
COMPRESSION_TRADEOFF = 0.9

# Raw deflate stream, no zlib header or checksum.
_WBITS = -15


def deflate(data: bytes) -> bytes:
    compressor = zlib.compressobj(zlib.Z_BEST_COMPRESSION, zlib.DEFLATED, _WBITS)
    return compressor.compress(data) + compressor.flush()


def inflate(data: bytes, expected_length: int | None = None) -> bytes:
    """Inflate a raw deflate stream, optionally checking the output size."""
    decompressor = zlib.decompressobj(_WBITS)
    out = decompressor.decompress(data) + decompressor.flush()
    if expected_length is not None and len(out) != expected_length:
        raise ValueError(f"inflated {len(out)} bytes, expected {expected_length}")
    return out


def select_stored_bytes(raw: bytes) -> bytes:
    """Return the bytes to store for *raw*: deflated if worthwhile, else *raw*."""
    if len(raw) <= MIN_COMPRESSION_SIZE:
        return raw
    compressed = deflate(raw)
    if len(compressed) < len(raw) * COMPRESSION_TRADEOFF:
        return compressed
    return raw
