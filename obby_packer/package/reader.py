"""`.obby` archive decoder and verifier.

Parsing and verification are separate steps: :func:`decode` always parses the
whole structure and recomputes the digest, and :meth:`ObbyArchive.verify`
decides whether the result can be trusted. Verification errors carry the
parsed archive so callers can still report what was inside.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from pydantic import ValidationError

from obby_packer.errors import FormatError, IntegrityError, SignatureError, SigningKeyError
from obby_packer.logging import get_logger
from obby_packer.package.binary import BinaryCursor
from obby_packer.package.writer import LENGTH_FIELD_SIZE, MAGIC, SIGNED_FLAG_SIZE, Reservation
from obby_packer.signing.checks import digests_match, sha384_range
from obby_packer.signing.keys import Verifier, load_verifier
from obby_packer.types import HASH_SIZE, ArchiveMetadata, Dependency, Entry, IntegrityBlock

MIN_BLOCK_SIZE = HASH_SIZE + SIGNED_FLAG_SIZE + LENGTH_FIELD_SIZE

log = get_logger(__name__)


@dataclass(frozen=True)
class ObbyArchive:
    metadata: ArchiveMetadata
    integrity: IntegrityBlock
    entries: tuple[Entry, ...]
    reservation: Reservation
    computed_digest: bytes

    @property
    def data_start(self) -> int:
        return self.reservation.data_start

    @property
    def digest_ok(self) -> bool:
        return digests_match(self.integrity.digest, self.computed_digest)

    def entry(self, name: str) -> Entry:
        for entry in self.entries:
            if entry.name == name:
                return entry
        raise KeyError(name)

    def verify(self, verifier: Verifier | None = None, require_signature: bool = False) -> None:
        """Check the digest, then the signature when a verifier is supplied.

        Raises IntegrityError, SignatureError or SigningKeyError. An unsigned
        archive passes unless *require_signature* is set.
        """
        if not self.digest_ok:
            raise IntegrityError(self.integrity.digest, self.computed_digest, archive=self)

        if not self.integrity.signed:
            if require_signature:
                raise SignatureError("Archive is not signed", archive=self)
            return
        if verifier is None:
            if require_signature:
                raise SigningKeyError(
                    "Archive is signed but no public key was supplied", archive=self
                )
            log.debug("Signature present, no public key supplied; skipping signature check")
            return
        try:
            verifier.verify(self.integrity.digest, self.integrity.signature or b"")
        except SignatureError as exc:
            raise SignatureError(str(exc), archive=self) from exc


def _read_integrity(cursor: BinaryCursor) -> tuple[Reservation, bytes, bool, bytes | None]:
    size_offset = cursor.position
    size = cursor.read_int32("integrity block size")
    if size < MIN_BLOCK_SIZE:
        raise FormatError(
            f"integrity block size {size} is below the minimum {MIN_BLOCK_SIZE}",
            offset=size_offset,
        )
    reservation = Reservation(block_start=cursor.position, size=size)

    digest = cursor.read_exact(HASH_SIZE, "digest")
    signed = cursor.read_bool("signed flag")
    signature = None
    if signed:
        length_offset = cursor.position
        length = cursor.read_int32("signature length")
        if cursor.position + length > reservation.data_start:
            raise FormatError(
                f"signature of {length} bytes overruns the {size}-byte integrity block",
                offset=length_offset,
            )
        signature = cursor.read_exact(length, "signature")
    return reservation, digest, signed, signature


def _read_trailer(stream: BinaryIO, data_start: int) -> int:
    end = stream.seek(0, os.SEEK_END)
    trailer_start = end - LENGTH_FIELD_SIZE
    if trailer_start < data_start:
        raise FormatError(
            f"file of {end} bytes ends before the data section at {data_start}", offset=end
        )
    cursor = BinaryCursor(stream)
    cursor.seek(trailer_start)
    content_length = cursor.read_int32("content length")
    if data_start + content_length != trailer_start:
        raise FormatError(
            f"content length mismatch: trailer says {content_length}, "
            f"file holds {trailer_start - data_start}",
            offset=trailer_start,
        )
    return content_length


def _read_metadata(cursor: BinaryCursor, api_version: str) -> ArchiveMetadata:
    fields = {
        key: cursor.read_string(key)
        for key in (
            "assembly_name",
            "version",
            "display_name",
            "plugin_id",
            "authors",
            "description",
            "project_url",
        )
    }
    count_offset = cursor.position
    dependencies = []
    for _ in range(cursor.read_int32("dependency count")):
        dep_id = cursor.read_string("dependency id")
        constraint = cursor.read_string("dependency version")
        required = cursor.read_bool("dependency required flag")
        dependencies.append(
            {"id": dep_id, "version_constraint": constraint, "required": required}
        )
    try:
        return ArchiveMetadata(
            api_version=api_version,
            dependencies=tuple(Dependency(**d) for d in dependencies),
            **fields,
        )
    except ValidationError as exc:
        raise FormatError(f"invalid metadata: {exc}", offset=count_offset) from exc


def _read_entries(cursor: BinaryCursor) -> tuple[Entry, ...]:
    headers: list[tuple[str, int, int, int]] = []
    names: set[str] = set()
    for _ in range(cursor.read_int32("entry count")):
        header_offset = cursor.position
        name = cursor.read_string("entry name")
        length = cursor.read_int32("entry length")
        stored = cursor.read_int32("entry stored length")
        if name in names:
            raise FormatError(f"duplicate entry name {name!r}", offset=header_offset)
        names.add(name)
        headers.append((name, length, stored, header_offset))

    entries = []
    for name, length, stored, header_offset in headers:
        payload = cursor.read_exact(stored, f"payload of {name!r}")
        try:
            entries.append(
                Entry(name=name, uncompressed_length=length, stored_length=stored, payload=payload)
            )
        except ValidationError as exc:
            raise FormatError(f"invalid entry {name!r}: {exc}", offset=header_offset) from exc
    return tuple(entries)


def decode(stream: BinaryIO) -> ObbyArchive:
    """Parse an archive from a seekable stream without judging its integrity.

    The one exception: if the data section cannot be parsed and its digest
    does not match, IntegrityError is raised (chained to the FormatError).
    """
    cursor = BinaryCursor(stream)
    cursor.seek(0)
    magic = cursor.read_exact(len(MAGIC), "magic")
    if magic != MAGIC:
        raise FormatError(f"bad magic: expected {MAGIC!r}, got {magic!r}", offset=0)
    api_version = cursor.read_string("api version")

    reservation, digest, signed, signature = _read_integrity(cursor)
    content_length = _read_trailer(stream, reservation.data_start)
    computed = sha384_range(stream, reservation.data_start, content_length)

    # Resume at the recorded anchor, not wherever the integrity fields ended.
    cursor.seek(reservation.data_start)
    try:
        metadata = _read_metadata(cursor, api_version)
        entries = _read_entries(cursor)
        data_end = reservation.data_start + content_length
        if cursor.position != data_end:
            raise FormatError(
                f"data section ends at {cursor.position}, expected {data_end}",
                offset=cursor.position,
            )
    except FormatError as exc:
        # A data section that no longer matches its digest was tampered with.
        if not digests_match(digest, computed):
            raise IntegrityError(digest, computed) from exc
        raise

    integrity = IntegrityBlock(
        digest=digest, signed=signed, signature=signature, content_length=content_length
    )
    return ObbyArchive(
        metadata=metadata,
        integrity=integrity,
        entries=entries,
        reservation=reservation,
        computed_digest=computed,
    )


def read_archive(
    source: Path | BinaryIO,
    public_key: Verifier | str | bytes | Path | None = None,
    require_signature: bool = False,
    verify: bool = True,
) -> ObbyArchive:
    """Decode *source* and, unless ``verify`` is false, verify it."""
    verifier = public_key
    if public_key is not None and not isinstance(public_key, Verifier):
        verifier = load_verifier(public_key)

    if isinstance(source, (str, Path)):
        with open(source, "rb") as fs:
            archive = decode(fs)
    else:
        archive = decode(source)

    log.debug(
        "Read %s: %d entries, %d data bytes",
        archive.metadata.archive_name,
        len(archive.entries),
        archive.integrity.content_length,
    )
    if verify:
        archive.verify(verifier, require_signature=require_signature)
    return archive
