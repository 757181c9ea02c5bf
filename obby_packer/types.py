"""Shared Pydantic models for archive contents."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

HASH_SIZE = 48  # SHA-384
DEFAULT_VERSION_CONSTRAINT = ">=1.0"
DEFAULT_DESCRIPTION = "No description provided"
DEFAULT_PROJECT_URL = "No project url"


class Entry(BaseModel):
    """One packed member.

    Attributes
    ----------
    name: str
        File name, unique within an archive.
    uncompressed_length: int
        Size of the original file.
    stored_length: int
        Size of ``payload``; smaller than ``uncompressed_length`` when deflated.
    payload: bytes
        Stored bytes, raw or deflated.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    uncompressed_length: int = Field(ge=0)
    stored_length: int = Field(ge=0)
    payload: bytes

    @model_validator(mode="after")
    def _check_lengths(self) -> Entry:
        if len(self.payload) != self.stored_length:
            raise ValueError(
                f"payload of {self.name!r} is {len(self.payload)} bytes, "
                f"stored_length says {self.stored_length}"
            )
        if self.stored_length > self.uncompressed_length:
            raise ValueError(f"stored_length exceeds uncompressed_length for {self.name!r}")
        return self

    @property
    def compressed(self) -> bool:
        return self.stored_length != self.uncompressed_length


class Dependency(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    version_constraint: str = DEFAULT_VERSION_CONSTRAINT
    required: bool = False


class ArchiveMetadata(BaseModel):
    """Descriptive header fields written ahead of the entry table."""

    model_config = ConfigDict(frozen=True)

    api_version: str = Field(min_length=1)
    assembly_name: str = Field(min_length=1)
    version: str = Field(min_length=1)
    display_name: str = Field(min_length=1)
    plugin_id: str = Field(min_length=1)
    authors: str = Field(min_length=1)
    description: str = DEFAULT_DESCRIPTION
    project_url: str = DEFAULT_PROJECT_URL
    dependencies: tuple[Dependency, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def _apply_defaults(cls, data):
        # Absent optional strings are written with their placeholder text.
        if isinstance(data, dict):
            data = dict(data)
            if not data.get("description"):
                data["description"] = DEFAULT_DESCRIPTION
            if not data.get("project_url"):
                data["project_url"] = DEFAULT_PROJECT_URL
        return data

    @property
    def archive_name(self) -> str:
        return f"{self.assembly_name}.obby"


class IntegrityBlock(BaseModel):
    model_config = ConfigDict(frozen=True)

    digest: bytes = Field(min_length=HASH_SIZE, max_length=HASH_SIZE)
    signed: bool = False
    signature: bytes | None = None
    content_length: int = Field(ge=0)

    @model_validator(mode="after")
    def _check_signature(self) -> IntegrityBlock:
        if self.signed != (self.signature is not None):
            raise ValueError("signature must be present iff the archive is signed")
        return self

    @property
    def digest_hex(self) -> str:
        return self.digest.hex()
