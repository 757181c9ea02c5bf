from __future__ import annotations

import io
from pathlib import Path

import pytest

from obby_packer.errors import FormatError
from obby_packer.package.collector import build_entry
from obby_packer.package.reader import read_archive
from obby_packer.package.writer import encode
from obby_packer.security.archive import entry_bytes, safe_extract
from obby_packer.types import Entry


def _archive(metadata, entries):
    buf = io.BytesIO()
    encode(buf, metadata, entries)
    return read_archive(io.BytesIO(buf.getvalue()))


def test_extract_inflates_members(tmp_path: Path, metadata) -> None:
    big = b"plugin code " * 500
    archive = _archive(metadata, [build_entry("Plugin.dll", big), build_entry("a.txt", b"hi")])

    written = safe_extract(archive, tmp_path / "out")

    assert [p.name for p in written] == ["Plugin.dll", "a.txt"]
    assert (tmp_path / "out" / "Plugin.dll").read_bytes() == big
    assert (tmp_path / "out" / "a.txt").read_bytes() == b"hi"


@pytest.mark.parametrize("name", ["../evil.dll", "sub/evil.dll", "..", "C:\\evil.dll"])
def test_extract_rejects_unsafe_names(tmp_path: Path, metadata, name: str) -> None:
    archive = _archive(metadata, [build_entry(name, b"x")])

    with pytest.raises(FormatError, match="Unsafe member name"):
        safe_extract(archive, tmp_path / "out")
    assert not (tmp_path / "evil.dll").exists()


def test_corrupt_deflate_stream_is_a_format_error() -> None:
    entry = Entry(name="bad.dll", uncompressed_length=5000, stored_length=4, payload=b"\xff\xff\xff\xff")

    with pytest.raises(FormatError, match="Cannot inflate"):
        entry_bytes(entry)


def test_unsafe_later_member_leaves_dest_empty(tmp_path: Path, metadata) -> None:
    archive = _archive(metadata, [build_entry("good.dll", b"ok"), build_entry("../evil.dll", b"x")])
    dest = tmp_path / "out"

    with pytest.raises(FormatError):
        safe_extract(archive, dest)
    assert list(dest.iterdir()) == []
