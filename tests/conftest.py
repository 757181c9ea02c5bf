from __future__ import annotations

from pathlib import Path

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from obby_packer.types import ArchiveMetadata, Dependency


def _private_pem(key) -> str:
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode("ascii")


def _public_pem(key) -> str:
    return (
        key.public_key()
        .public_bytes(
            serialization.Encoding.PEM,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode("ascii")
    )


@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def rsa_pems(rsa_key) -> tuple[str, str]:
    """(private PEM, public PEM) for a 2048-bit RSA key."""
    return _private_pem(rsa_key), _public_pem(rsa_key)


@pytest.fixture(scope="session")
def other_rsa_pems() -> tuple[str, str]:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return _private_pem(key), _public_pem(key)


@pytest.fixture(scope="session")
def ec_pems() -> tuple[str, str]:
    key = ec.generate_private_key(ec.SECP384R1())
    return _private_pem(key), _public_pem(key)


@pytest.fixture
def metadata() -> ArchiveMetadata:
    return ArchiveMetadata(
        api_version="1.0.0",
        assembly_name="MySamplePluginTemplate",
        version="1.0.0",
        display_name="My Sample Plugin",
        plugin_id="obsidianteam.mysampleplugin",
        authors="ObsidianTeam",
        project_url="https://obsidianmc.net",
        dependencies=(Dependency(id="obsidianteam.core", required=True),),
    )


@pytest.fixture
def publish_dir(tmp_path: Path) -> Path:
    """A small publish directory with compressible, tiny and excluded files."""
    root = tmp_path / "publish"
    root.mkdir()
    (root / "MySamplePluginTemplate.dll").write_bytes(b"MZ" + bytes(4000))
    (root / "MySamplePluginTemplate.deps.json").write_text('{"deps": {}}', encoding="utf-8")
    (root / "Newtonsoft.Json.dll").write_bytes(bytes(range(256)) * 8)
    (root / "testhost.dll").write_bytes(b"skip me")
    (root / "MySamplePluginTemplate.obby").write_bytes(b"stale archive")
    (root / "runtimes").mkdir()
    (root / "runtimes" / "native.so").write_bytes(b"nested files are not packed")
    return root
