"""Member discovery and collection.

Turns publish-directory files into in-memory :class:`Entry` values, applying
the compression policy from :mod:`obby_packer.package.compression`.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from obby_packer.logging import get_logger
from obby_packer.package.compression import select_stored_bytes
from obby_packer.types import Entry

TEST_RUNNER_PREFIX = "testhost"

log = get_logger(__name__)


def build_entry(name: str, data: bytes) -> Entry:
    stored = select_stored_bytes(data)
    if len(stored) != len(data):
        log.debug("Compressed %s: %d -> %d bytes", name, len(data), len(stored))
    return Entry(
        name=name,
        uncompressed_length=len(data),
        stored_length=len(stored),
        payload=stored,
    )


def collect_file(path: Path) -> Entry:
    """Read *path* fully and build its entry. Raises ``OSError`` if unreadable."""
    data = path.read_bytes()
    log.debug("Packing %s (%d bytes)", path.name, len(data))
    return build_entry(path.name, data)


def collect_entries(paths: Iterable[Path]) -> list[Entry]:
    return [collect_file(Path(p)) for p in paths]


def is_excluded(name: str, archive_name: str) -> bool:
    return name.startswith(TEST_RUNNER_PREFIX) or name == archive_name


def discover_members(publish_dir: Path, archive_name: str) -> list[Path]:
    """List files directly under *publish_dir* that belong in the archive.

    Sub-directories are ignored, as are test-runner files and a previous
    archive with the same name. Results are sorted by name for stable output.
    """
    if not publish_dir.is_dir():
        raise NotADirectoryError(f"Publish directory not found: {publish_dir}")
    members: list[Path] = []
    for path in sorted(publish_dir.iterdir(), key=lambda p: p.name):
        if not path.is_file():
            continue
        if is_excluded(path.name, archive_name):
            log.debug("Skipping %s", path.name)
            continue
        members.append(path)
    return members
