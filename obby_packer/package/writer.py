"""`.obby` archive encoder.

The integrity block (digest, signed flag, optional signature) sits ahead of
the data it protects, but its values are only known once the data has been
written. :class:`ArchiveWriter` therefore works in two phases:

1. :meth:`ArchiveWriter.reserve` writes the magic, api version and the size of
   a zero-filled reservation large enough for the biggest block the configured
   key can produce, and records where the data section starts.
2. :meth:`ArchiveWriter.finalize` hashes the data section, signs the digest,
   seeks back to patch the reservation, and appends the content length.

The reservation size is written to the header, so readers jump straight to
``data_start`` no matter how much of the reservation the block used.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from obby_packer.errors import SigningKeyError
from obby_packer.logging import get_logger
from obby_packer.package.binary import (
    INT32_MAX,
    encode_bool,
    encode_int32,
    encode_string,
)
from obby_packer.signing.checks import sha384_range
from obby_packer.signing.keys import Signer
from obby_packer.types import HASH_SIZE, ArchiveMetadata, Entry, IntegrityBlock

MAGIC = b"OBBY"
SIGNED_FLAG_SIZE = 1
LENGTH_FIELD_SIZE = 4

log = get_logger(__name__)


def integrity_block_size(signer: Signer | None) -> int:
    """Bytes to reserve for the integrity block given the configured signer."""
    size = HASH_SIZE + SIGNED_FLAG_SIZE
    if signer is not None:
        size += LENGTH_FIELD_SIZE + signer.max_signature_size
    return size + LENGTH_FIELD_SIZE


@dataclass(frozen=True)
class Reservation:
    block_start: int
    size: int

    @property
    def data_start(self) -> int:
        return self.block_start + self.size


def check_entries(entries: Sequence[Entry]) -> None:
    """Raise ValueError for duplicate names or lengths that do not fit int32."""
    seen: set[str] = set()
    for entry in entries:
        if entry.name in seen:
            raise ValueError(f"Duplicate entry name: {entry.name}")
        seen.add(entry.name)
        if entry.uncompressed_length > INT32_MAX:
            raise ValueError(f"Entry too large for the format: {entry.name}")


class ArchiveWriter:
    """Two-phase encoder over a seekable, readable binary stream."""

    def __init__(self, stream: BinaryIO, signer: Signer | None = None) -> None:
        self.stream = stream
        self.signer = signer

    def reserve(self, api_version: str) -> Reservation:
        size = integrity_block_size(self.signer)
        self.stream.write(MAGIC)
        self.stream.write(encode_string(api_version))
        self.stream.write(encode_int32(size))
        reservation = Reservation(block_start=self.stream.tell(), size=size)
        self.stream.write(bytes(size))
        log.debug("Reserved %d bytes for the integrity block", size)
        return reservation

    def write_data(
        self, reservation: Reservation, metadata: ArchiveMetadata, entries: Sequence[Entry]
    ) -> None:
        s = self.stream
        s.seek(reservation.data_start)
        for value in (
            metadata.assembly_name,
            metadata.version,
            metadata.display_name,
            metadata.plugin_id,
            metadata.authors,
            metadata.description,
            metadata.project_url,
        ):
            s.write(encode_string(value))

        s.write(encode_int32(len(metadata.dependencies)))
        for dep in metadata.dependencies:
            s.write(encode_string(dep.id))
            s.write(encode_string(dep.version_constraint))
            s.write(encode_bool(dep.required))

        log.info("Writing entry headers (%d)", len(entries))
        s.write(encode_int32(len(entries)))
        for entry in entries:
            log.debug("Entry %s (%d/%d)", entry.name, entry.stored_length, entry.uncompressed_length)
            s.write(encode_string(entry.name))
            s.write(encode_int32(entry.uncompressed_length))
            s.write(encode_int32(entry.stored_length))

        log.info("Writing entries (%d)", len(entries))
        for entry in entries:
            s.write(entry.payload)

    def finalize(self, reservation: Reservation) -> IntegrityBlock:
        s = self.stream
        data_end = s.seek(0, os.SEEK_END)
        content_length = data_end - reservation.data_start
        # Fail before patching anything if the trailer cannot encode the length.
        trailer = encode_int32(content_length)

        digest = sha384_range(s, reservation.data_start, content_length)
        log.info("Hash: %s", digest.hex().upper())

        block = bytearray(digest)
        signature: bytes | None = None
        block += encode_bool(self.signer is not None)
        if self.signer is not None:
            signature = self.signer.sign(digest)
            log.info("Signature length: %d (%s)", len(signature), self.signer.scheme)
            block += encode_int32(len(signature))
            block += signature
        else:
            log.info("No signature.")

        if len(block) > reservation.size:
            raise SigningKeyError(
                f"Integrity block of {len(block)} bytes exceeds the "
                f"{reservation.size} bytes reserved for it"
            )

        s.seek(reservation.block_start)
        s.write(block)
        s.seek(data_end)
        s.write(trailer)
        log.info("Data length: %d", content_length)

        return IntegrityBlock(
            digest=digest,
            signed=signature is not None,
            signature=signature,
            content_length=content_length,
        )


def encode(
    stream: BinaryIO,
    metadata: ArchiveMetadata,
    entries: Sequence[Entry],
    signer: Signer | None = None,
) -> IntegrityBlock:
    """Encode a complete archive into *stream*, which must be empty and seekable."""
    check_entries(entries)
    writer = ArchiveWriter(stream, signer)
    reservation = writer.reserve(metadata.api_version)
    writer.write_data(reservation, metadata, entries)
    return writer.finalize(reservation)


def _current_umask() -> int:
    umask = os.umask(0)
    os.umask(umask)
    return umask


def write_archive(
    target: Path,
    metadata: ArchiveMetadata,
    entries: Sequence[Entry],
    signer: Signer | None = None,
) -> IntegrityBlock:
    """Write an archive to *target* atomically.

    The archive is built in a temporary file beside *target* and moved into
    place only after it is complete; on any failure the temporary file is
    removed and an existing *target* is left untouched.
    """
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w+b") as fs:
            block = encode(fs, metadata, entries, signer)
            fs.flush()
            os.fsync(fs.fileno())
        # mkstemp creates 0600; give the archive the mode a plain open() would.
        os.chmod(tmp, 0o666 & ~_current_umask())
        os.replace(tmp, target)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
    log.info("Plugin successfully packed at %s", target)
    return block
