"""Pack orchestration: discover → collect → encode → (hash, sign) → atomic move."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from obby_packer.logging import get_logger
from obby_packer.package.collector import collect_entries, discover_members
from obby_packer.package.writer import write_archive
from obby_packer.signing.keys import load_signer
from obby_packer.types import ArchiveMetadata, IntegrityBlock
from obby_packer.validator import build_dependencies

log = get_logger(__name__)


@dataclass(frozen=True)
class EntrySummary:
    name: str
    uncompressed_length: int
    stored_length: int


@dataclass(frozen=True)
class PackRequest:
    publish_dir: Path
    api_version: str
    assembly_name: str
    version: str
    display_name: str
    plugin_id: str
    authors: str
    description: str | None = None
    project_url: str | None = None
    dependencies: tuple[Mapping[str, object], ...] = ()
    signing_key: str | None = None
    key_password: str | None = None
    output_dir: Path | None = None


@dataclass(frozen=True)
class PackResult:
    path: Path
    metadata: ArchiveMetadata
    integrity: IntegrityBlock
    entries: tuple[EntrySummary, ...]
    warnings: tuple[str, ...] = field(default_factory=tuple)


def pack_plugin(request: PackRequest) -> PackResult:
    log.info("------ Starting Plugin Packer ------")
    dependencies, warnings = build_dependencies(request.dependencies)
    metadata = ArchiveMetadata(
        api_version=request.api_version,
        assembly_name=request.assembly_name,
        version=request.version,
        display_name=request.display_name,
        plugin_id=request.plugin_id,
        authors=request.authors,
        description=request.description,
        project_url=request.project_url,
        dependencies=dependencies,
    )

    # Resolve the key up front so a bad key fails before any file is read.
    signer = load_signer(request.signing_key, request.key_password) if request.signing_key else None

    log.info("Gathering entries...")
    members = discover_members(request.publish_dir, metadata.archive_name)
    entries = collect_entries(members)
    log.info("Entries gathered (%d). Starting packing process..", len(entries))

    target = (request.output_dir or request.publish_dir) / metadata.archive_name
    integrity = write_archive(target, metadata, entries, signer)

    return PackResult(
        path=target,
        metadata=metadata,
        integrity=integrity,
        entries=tuple(
            EntrySummary(e.name, e.uncompressed_length, e.stored_length) for e in entries
        ),
        warnings=tuple(warnings),
    )
