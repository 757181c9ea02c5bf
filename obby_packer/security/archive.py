"""Safe archive extraction helpers.

Guards against common archive attacks:
- Path traversal (``..``, separators, absolute names)
- Oversized members (basic cap)
- Deflate output that disagrees with the recorded length
"""

from __future__ import annotations

import zlib
from pathlib import Path, PurePosixPath, PureWindowsPath

from obby_packer.errors import FormatError
from obby_packer.package.compression import inflate
from obby_packer.package.reader import ObbyArchive
from obby_packer.types import Entry

MAX_MEMBER_BYTES = 512 * 1024 * 1024  # 512 MiB per member


def _is_within(base: Path, target: Path) -> bool:
    try:
        target.relative_to(base)
        return True
    except ValueError:
        return False


def _check_name(name: str) -> None:
    # Archives are flat: a member name is a bare file name on every platform.
    if (
        name in {"", ".", ".."}
        or PurePosixPath(name).name != name
        or PureWindowsPath(name).name != name
    ):
        raise FormatError(f"Unsafe member name: {name!r}")


def entry_bytes(entry: Entry) -> bytes:
    """Return the original file contents of *entry*, inflating if needed."""
    if entry.uncompressed_length > MAX_MEMBER_BYTES:
        raise FormatError(f"Member too large: {entry.name} ({entry.uncompressed_length} bytes)")
    if not entry.compressed:
        return entry.payload
    try:
        return inflate(entry.payload, expected_length=entry.uncompressed_length)
    except (ValueError, zlib.error) as exc:
        raise FormatError(f"Cannot inflate {entry.name}: {exc}") from exc


def safe_extract(archive: ObbyArchive, dest: Path) -> list[Path]:
    """Write every member of *archive* into *dest* and return the written paths."""
    dest.mkdir(parents=True, exist_ok=True)
    base = dest.resolve()
    # Check every member before the first write so a bad name leaves dest untouched.
    targets: list[tuple[Entry, Path]] = []
    for entry in archive.entries:
        _check_name(entry.name)
        target = (base / entry.name).resolve()
        if not _is_within(base, target) or target == base:
            raise FormatError(f"Member escapes destination: {entry.name}")
        if entry.uncompressed_length > MAX_MEMBER_BYTES:
            raise FormatError(f"Member too large: {entry.name} ({entry.uncompressed_length} bytes)")
        targets.append((entry, target))

    written: list[Path] = []
    for entry, target in targets:
        target.write_bytes(entry_bytes(entry))
        written.append(target)
    return written
