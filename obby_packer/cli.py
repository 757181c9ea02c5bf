"""obby CLI — pack plugin outputs into signed `.obby` archives and check them.

Commands:
- pack: build `<assembly>.obby` from a publish directory
- inspect: show metadata, integrity block and entries
- verify: check digest and (optionally) signature
- extract: verify, then write the members to a directory
"""

from __future__ import annotations

from pathlib import Path

import typer
from jsonschema import ValidationError as SchemaValidationError
from pydantic import ValidationError
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from obby_packer.core import PackRequest, pack_plugin
from obby_packer.errors import ObbyError, VerificationError
from obby_packer.logging import set_verbosity
from obby_packer.package.reader import ObbyArchive, read_archive
from obby_packer.security.archive import safe_extract
from obby_packer.validator import load_manifest

app = typer.Typer(add_completion=False, help="Pack and verify Obby plugin archives")
console = Console()

REQUIRED_FIELDS = {
    "api_version": "--api-version",
    "assembly_name": "--assembly",
    "version": "--version",
    "display_name": "--name",
    "plugin_id": "--id",
    "authors": "--authors",
}


def _fail(message: str) -> None:
    rprint(f"[red]{message}[/red]")
    raise typer.Exit(code=1)


def _print_archive(archive: ObbyArchive) -> None:
    meta = archive.metadata
    info = Table(title=meta.archive_name, show_header=False)
    info.add_column("Field", style="cyan")
    info.add_column("Value")
    info.add_row("API version", meta.api_version)
    info.add_row("Assembly", meta.assembly_name)
    info.add_row("Version", meta.version)
    info.add_row("Name", meta.display_name)
    info.add_row("Id", meta.plugin_id)
    info.add_row("Authors", meta.authors)
    info.add_row("Description", meta.description)
    info.add_row("Project URL", meta.project_url)
    for dep in meta.dependencies:
        flag = "required" if dep.required else "optional"
        info.add_row("Dependency", f"{dep.id} {dep.version_constraint} ({flag})")
    info.add_row("SHA-384", archive.integrity.digest_hex)
    info.add_row("Digest OK", "yes" if archive.digest_ok else "[red]NO[/red]")
    sig = archive.integrity.signature
    info.add_row("Signed", f"yes ({len(sig)} bytes)" if sig is not None else "no")
    info.add_row("Content length", str(archive.integrity.content_length))
    console.print(info)

    table = Table(title="Entries")
    table.add_column("Name", style="cyan")
    table.add_column("Length", justify="right")
    table.add_column("Stored", justify="right")
    table.add_column("Compressed")
    for entry in archive.entries:
        table.add_row(
            entry.name,
            str(entry.uncompressed_length),
            str(entry.stored_length),
            "yes" if entry.compressed else "",
        )
    console.print(table)


@app.command()
def pack(
    publish_dir: str = typer.Argument(..., help="Directory holding the plugin build outputs"),
    manifest: str | None = typer.Option(None, "--manifest", help="Plugin manifest (JSON)"),
    api_version: str | None = typer.Option(None, "--api-version", help="Plugin API version"),
    assembly: str | None = typer.Option(None, "--assembly", help="Assembly / module name"),
    version: str | None = typer.Option(None, "--version", help="Plugin version"),
    name: str | None = typer.Option(None, "--name", help="Display name"),
    plugin_id: str | None = typer.Option(None, "--id", help="Plugin id"),
    authors: str | None = typer.Option(None, "--authors", help="Plugin authors"),
    description: str | None = typer.Option(None, "--description", help="Plugin description"),
    project_url: str | None = typer.Option(None, "--project-url", help="Project URL"),
    signing_key: str | None = typer.Option(
        None, "--signing-key", envvar="OBBY_SIGNING_KEY", help="Private key PEM or path to it"
    ),
    key_password: str | None = typer.Option(
        None, "--key-password", envvar="OBBY_SIGNING_KEY_PASSWORD", help="Private key password"
    ),
    out: str | None = typer.Option(None, "--out", help="Output directory (default: publish dir)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log per-entry details"),
) -> None:
    set_verbosity(verbose)
    try:
        fields = load_manifest(Path(manifest)) if manifest else {}
    except (OSError, ValueError, SchemaValidationError) as exc:
        _fail(f"Invalid manifest: {exc}")

    overrides = {
        "api_version": api_version,
        "assembly_name": assembly,
        "version": version,
        "display_name": name,
        "plugin_id": plugin_id,
        "authors": authors,
        "description": description,
        "project_url": project_url,
    }
    fields.update({k: v for k, v in overrides.items() if v is not None})
    missing = [flag for key, flag in REQUIRED_FIELDS.items() if not fields.get(key)]
    if missing:
        _fail(f"Missing required values: {', '.join(missing)}")

    request = PackRequest(
        publish_dir=Path(publish_dir),
        api_version=fields["api_version"],
        assembly_name=fields["assembly_name"],
        version=fields["version"],
        display_name=fields["display_name"],
        plugin_id=fields["plugin_id"],
        authors=fields["authors"],
        description=fields.get("description"),
        project_url=fields.get("project_url"),
        dependencies=tuple(fields.get("dependencies", ())),
        signing_key=signing_key,
        key_password=key_password,
        output_dir=Path(out) if out else None,
    )
    try:
        result = pack_plugin(request)
    except (ObbyError, OSError, ValueError, ValidationError) as exc:
        _fail(f"Pack failed: {exc}")

    for warning in result.warnings:
        rprint(f"[yellow]Warning:[/yellow] {warning}")
    rprint(
        f"[green]Packed:[/green] {result.path} "
        f"({len(result.entries)} entries, signed={result.integrity.signed})"
    )


@app.command()
def inspect(archive: str = typer.Argument(..., help="Path to a .obby archive")) -> None:
    try:
        parsed = read_archive(Path(archive), verify=False)
    except (ObbyError, OSError) as exc:
        _fail(f"Cannot read archive: {exc}")
    _print_archive(parsed)


@app.command()
def verify(
    archive: str = typer.Argument(..., help="Path to a .obby archive"),
    public_key: str | None = typer.Option(
        None, "--public-key", envvar="OBBY_PUBLIC_KEY", help="Public key PEM or path to it"
    ),
    require_signature: bool = typer.Option(
        False, "--require-signature", help="Reject unsigned archives"
    ),
) -> None:
    try:
        parsed = read_archive(
            Path(archive), public_key=public_key, require_signature=require_signature
        )
    except VerificationError as exc:
        _fail(f"Verification failed: {exc}")
    except (ObbyError, OSError) as exc:
        _fail(f"Cannot read archive: {exc}")

    if parsed.integrity.signed and public_key:
        rprint("[green]SHA-384 and signature verified.[/green]")
    else:
        rprint("[green]SHA-384 verified.[/green]")


@app.command()
def extract(
    archive: str = typer.Argument(..., help="Path to a .obby archive"),
    dest: str = typer.Argument(..., help="Destination directory"),
    public_key: str | None = typer.Option(
        None, "--public-key", envvar="OBBY_PUBLIC_KEY", help="Public key PEM or path to it"
    ),
) -> None:
    try:
        parsed = read_archive(Path(archive), public_key=public_key)
        written = safe_extract(parsed, Path(dest))
    except (ObbyError, OSError) as exc:
        _fail(f"Extract failed: {exc}")
    rprint(f"[green]Extracted {len(written)} entries to[/green] {dest}")


if __name__ == "__main__":
    app()
