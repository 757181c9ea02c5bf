"""Manifest validation and dependency building."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from importlib import resources
from pathlib import Path

from jsonschema import Draft202012Validator

from obby_packer.logging import get_logger
from obby_packer.types import DEFAULT_VERSION_CONSTRAINT, Dependency

log = get_logger(__name__)

# Manifest keys mapped onto ArchiveMetadata field names.
MANIFEST_FIELDS = {
    "apiVersion": "api_version",
    "assembly": "assembly_name",
    "version": "version",
    "name": "display_name",
    "id": "plugin_id",
    "authors": "authors",
    "description": "description",
    "projectUrl": "project_url",
}

# --- Schema loaders ---------------------------------------------------------


def _load_schema(package: str, resource_name: str) -> dict:
    with resources.files(package).joinpath(resource_name).open("r", encoding="utf-8") as f:
        return json.load(f)


def _plugin_schema() -> dict:
    return _load_schema("obby_packer.schema", "plugin.schema.json")


# --- Public validators ------------------------------------------------------


def validate_manifest(data: dict) -> None:
    Draft202012Validator(_plugin_schema()).validate(data)


def load_manifest(path: Path) -> dict:
    """Read and validate a plugin manifest, returning ArchiveMetadata-style keys.

    The ``dependencies`` list is passed through untouched for
    :func:`build_dependencies`.
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    validate_manifest(data)
    fields: dict = {}
    for key, field in MANIFEST_FIELDS.items():
        value = data.get(key)
        if value is None:
            continue
        if key == "authors" and isinstance(value, list):
            value = ", ".join(value)
        fields[field] = value
    fields["dependencies"] = list(data.get("dependencies") or [])
    return fields


# --- Dependencies -----------------------------------------------------------


def _parse_required(value: object) -> bool:
    if value is None or value == "":
        return False
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in {"true", "false"}:
        return text == "true"
    raise ValueError(f"Required must be 'true' or 'false', got {value!r}")


def build_dependencies(
    descriptors: Iterable[Mapping[str, object]],
) -> tuple[tuple[Dependency, ...], list[str]]:
    """Turn build-item style descriptors into dependencies.

    Descriptors use the ``Id`` / ``Version`` / ``Required`` keys. Items without
    an id are dropped; a warning is logged and returned for each of them.
    """
    dependencies: list[Dependency] = []
    warnings: list[str] = []
    for index, item in enumerate(descriptors):
        dep_id = str(item.get("Id") or "").strip()
        if not dep_id:
            message = f"Id is required when defining a dependency (item {index} skipped)."
            log.warning(message)
            warnings.append(message)
            continue
        version = str(item.get("Version") or "").strip() or DEFAULT_VERSION_CONSTRAINT
        dependencies.append(
            Dependency(
                id=dep_id,
                version_constraint=version,
                required=_parse_required(item.get("Required")),
            )
        )
    return tuple(dependencies), warnings
