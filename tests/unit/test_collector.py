from __future__ import annotations

import os
from pathlib import Path

import pytest

from obby_packer.package.collector import (
    build_entry,
    collect_file,
    discover_members,
    is_excluded,
)
from obby_packer.package.compression import (
    COMPRESSION_TRADEOFF,
    MIN_COMPRESSION_SIZE,
    inflate,
    select_stored_bytes,
)


def test_compressible_member_is_deflated() -> None:
    """2000 zero bytes must shrink below the 90% tradeoff and inflate back."""
    entry = build_entry("zeros.bin", bytes(2000))

    assert entry.uncompressed_length == 2000
    assert entry.stored_length < 2000 * COMPRESSION_TRADEOFF
    assert entry.compressed
    assert inflate(entry.payload, expected_length=2000) == bytes(2000)


def test_small_member_is_stored_raw_even_if_compressible() -> None:
    data = bytes(500)
    entry = build_entry("small.bin", data)

    assert entry.stored_length == entry.uncompressed_length == 500
    assert entry.payload == data
    assert not entry.compressed


def test_threshold_is_exclusive() -> None:
    data = bytes(MIN_COMPRESSION_SIZE)
    assert select_stored_bytes(data) == data
    assert len(select_stored_bytes(bytes(MIN_COMPRESSION_SIZE + 1))) < MIN_COMPRESSION_SIZE


def test_incompressible_member_is_stored_raw() -> None:
    data = os.urandom(2000)
    entry = build_entry("random.bin", data)

    assert entry.payload == data
    assert entry.stored_length == 2000


def test_collect_file_reads_without_mutating(tmp_path: Path) -> None:
    src = tmp_path / "plugin.dll"
    src.write_bytes(b"A" * 3000)

    entry = collect_file(src)

    assert entry.name == "plugin.dll"
    assert entry.uncompressed_length == 3000
    assert entry.compressed
    assert src.read_bytes() == b"A" * 3000


def test_collect_missing_file_raises_oserror(tmp_path: Path) -> None:
    with pytest.raises(OSError):
        collect_file(tmp_path / "missing.dll")


def test_discover_members_applies_exclusions(publish_dir: Path) -> None:
    names = [p.name for p in discover_members(publish_dir, "MySamplePluginTemplate.obby")]

    assert names == [
        "MySamplePluginTemplate.deps.json",
        "MySamplePluginTemplate.dll",
        "Newtonsoft.Json.dll",
    ]


def test_is_excluded() -> None:
    assert is_excluded("testhost.exe", "a.obby")
    assert is_excluded("a.obby", "a.obby")
    assert not is_excluded("b.obby", "a.obby")
    assert not is_excluded("mytesthost.dll", "a.obby")


def test_discover_members_requires_directory(tmp_path: Path) -> None:
    with pytest.raises(NotADirectoryError):
        discover_members(tmp_path / "nope", "a.obby")
