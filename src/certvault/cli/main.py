"""CLI entry point for certvault.

Invoked as::

    certvault [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m certvault.cli.main

Commands
--------
version                  Show version information
backup create            Back up a CA datastore into a zip archive
backup restore           Restore a backup archive into a directory
backup inspect           Show the manifest of a backup archive
backup verify            Check every entry of a backup archive
credentials verify-pair  Check that a private key matches a certificate
credentials export       Export credentials into another container
template show            Display a stored certificate template
"""
from __future__ import annotations

import logging
import sys
import uuid
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from certvault.audit import ActivityLog
from certvault.backup.progress import ProgressEvent
from certvault.config import VaultConfig, load_config
from certvault.crypto.context import CryptoContext
from certvault.errors import CertVaultError

console = Console()
err_console = Console(stderr=True)


def _fail(message: str) -> None:
    console.print(f"[red]Error:[/red] {message}")
    sys.exit(1)


class _ProgressReporter:
    """Feeds engine progress events into a rich progress bar."""

    def __init__(self, progress: Progress, description: str) -> None:
        self._progress = progress
        self._task = progress.add_task(description, total=None, item="")

    def __call__(self, event: ProgressEvent) -> None:
        self._progress.update(
            self._task, total=event.total, completed=event.completed, item=event.item
        )


def _progress_bar() -> Progress:
    return Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        TextColumn("{task.fields[item]}", style="dim"),
        console=console,
        transient=True,
    )


# ------------------------------------------------------------------
# Root group
# ------------------------------------------------------------------


@click.group()
@click.version_option(package_name="certvault")
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON configuration file.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Logging level (overrides the configuration file).",
)
@click.option(
    "--audit-log",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Append an activity record of each operation to this JSONL file.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_file: Path | None,
    log_level: str | None,
    audit_log: Path | None,
) -> None:
    """Certificate authority credential export, backup and restore"""
    try:
        config = load_config(config_file)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--config") from exc

    level = (log_level or config.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["crypto"] = CryptoContext.from_config(config)
    ctx.obj["activity_log"] = ActivityLog(audit_log) if audit_log is not None else None


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from certvault import __version__

    console.print(f"[bold]certvault[/bold] v{__version__}")


# ------------------------------------------------------------------
# backup command group
# ------------------------------------------------------------------


@cli.group(name="backup")
def backup_group() -> None:
    """Back up and restore CA datastores."""


def _engine(ctx: click.Context):  # type: ignore[no-untyped-def]
    from certvault.backup.engine import BackupEngine

    config: VaultConfig = ctx.obj["config"]
    return BackupEngine(
        compression=config.archive_compression, activity_log=ctx.obj["activity_log"]
    )


@backup_group.command(name="create")
@click.argument("datastore", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.argument("archive", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--ca-id", required=True, help="UUID of the certificate authority.")
@click.option("--description", "-d", required=True, help="Human-readable CA name.")
@click.pass_context
def backup_create_command(
    ctx: click.Context,
    datastore: Path,
    archive: Path,
    ca_id: str,
    description: str,
) -> None:
    """Back up DATASTORE into ARCHIVE."""
    from certvault.backup.engine import DatastoreInfo

    try:
        identifier = uuid.UUID(ca_id)
    except ValueError:
        raise click.BadParameter(f"{ca_id!r} is not a UUID", param_hint="--ca-id")

    engine = _engine(ctx)
    try:
        with _progress_bar() as progress:
            manifest = engine.backup(
                DatastoreInfo(base_path=datastore, ca_id=identifier, description=description),
                archive,
                progress=_ProgressReporter(progress, f"Backup of {description!r}"),
            )
    except CertVaultError as exc:
        _fail(str(exc))
        return

    console.print(
        f"[green]Backed up[/green] {len(manifest.entries)} file(s) "
        f"({manifest.total_bytes} bytes) to [bold]{archive}[/bold]"
    )


@backup_group.command(name="restore")
@click.argument("archive", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("destination", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.pass_context
def backup_restore_command(ctx: click.Context, archive: Path, destination: Path) -> None:
    """Restore ARCHIVE into DESTINATION."""
    engine = _engine(ctx)
    try:
        with _progress_bar() as progress:
            base_path = engine.restore(
                archive, destination, progress=_ProgressReporter(progress, "Restoring")
            )
    except CertVaultError as exc:
        _fail(str(exc))
        return

    console.print(f"[green]Restored[/green] datastore to [bold]{base_path}[/bold]")


def _manifest_table(manifest) -> Table:  # type: ignore[no-untyped-def]
    table = Table(title=f"Backup of {manifest.description!r}", show_header=True)
    table.add_column("Entry", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("SHA-512", style="dim")
    for entry in manifest.entries:
        table.add_row(entry.relative_path, str(entry.size_bytes), entry.digest_hex[:16] + "...")
    return table


@backup_group.command(name="inspect")
@click.argument("archive", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def backup_inspect_command(ctx: click.Context, archive: Path) -> None:
    """Show the manifest of ARCHIVE."""
    try:
        manifest = _engine(ctx).inspect(archive)
    except CertVaultError as exc:
        _fail(str(exc))
        return

    console.print(f"  CA ID:       {manifest.archive_id}")
    console.print(f"  Description: {manifest.description}")
    console.print(f"  Created:     {manifest.created_at.isoformat()}")
    console.print(_manifest_table(manifest))
    console.print(f"\nTotal: {len(manifest.entries)} entries, {manifest.total_bytes} bytes")


@backup_group.command(name="verify")
@click.argument("archive", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def backup_verify_command(ctx: click.Context, archive: Path) -> None:
    """Check the identity, sizes and digests of every entry in ARCHIVE."""
    try:
        manifest = _engine(ctx).verify(archive)
    except CertVaultError as exc:
        console.print(f"  [red]FAIL[/red]  {exc}")
        sys.exit(1)

    console.print(
        f"  [green]PASS[/green]  {len(manifest.entries)} entries verified for "
        f"{manifest.description!r} ({manifest.archive_id})"
    )


# ------------------------------------------------------------------
# credentials command group
# ------------------------------------------------------------------


@cli.group(name="credentials")
def credentials_group() -> None:
    """Validate and export key/certificate material."""


def _open_bundle(ctx: click.Context, cert_file: Path, key_file: Path | None, password: str | None):  # type: ignore[no-untyped-def]
    from certvault.credentials.validator import CredentialValidator

    validator = CredentialValidator(ctx.obj["crypto"])
    if cert_file.suffix.lower() in (".p12", ".pfx"):
        return validator.open_pkcs12(cert_file, password)
    if key_file is None:
        return validator.open_pkcs7(cert_file)
    return validator.open_pkcs7_8(cert_file, key_file, password)


@credentials_group.command(name="verify-pair")
@click.argument("cert_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("key_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--password",
    envvar="CERTVAULT_PASSWORD",
    default=None,
    help="Password of an encrypted key file.",
)
@click.pass_context
def verify_pair_command(
    ctx: click.Context, cert_file: Path, key_file: Path, password: str | None
) -> None:
    """Check that KEY_FILE holds the private key of CERT_FILE."""
    from cryptography.hazmat.primitives.serialization import Encoding

    from certvault.crypto.digest import fingerprints

    try:
        bundle = _open_bundle(ctx, cert_file, key_file, password)
    except CertVaultError as exc:
        console.print(f"  [red]FAIL[/red]  {exc}")
        sys.exit(1)

    console.print(
        f"  [green]PASS[/green]  Private key matches "
        f"{bundle.certificate.subject.rfc4514_string()}"
    )
    for name, value in fingerprints(bundle.certificate.public_bytes(Encoding.DER)).items():
        console.print(f"  [dim]{name:<8}[/dim] {value}")


@credentials_group.command(name="export")
@click.argument("cert_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("output", type=click.Path(dir_okay=False, path_type=Path))
@click.option(
    "--key",
    "key_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Private key file matching CERT_FILE.",
)
@click.option(
    "--password",
    envvar="CERTVAULT_PASSWORD",
    default=None,
    help="Password unlocking the key file or keystore.",
)
@click.option(
    "--format",
    "export_format",
    type=click.Choice(["certificate", "chain", "pkcs12", "pkcs8", "public-key"]),
    default="certificate",
    show_default=True,
)
@click.option(
    "--encoding",
    type=click.Choice(["pem", "der"]),
    default="pem",
    show_default=True,
)
@click.option(
    "--cipher",
    default=None,
    help="PKCS#8 cipher (e.g. AES_256_CBC) or PKCS#12 cipher (e.g. AES256).",
)
@click.option(
    "--export-password",
    envvar="CERTVAULT_EXPORT_PASSWORD",
    default=None,
    help="Password protecting the exported key or keystore.",
)
@click.pass_context
def export_command(
    ctx: click.Context,
    cert_file: Path,
    output: Path,
    key_file: Path | None,
    password: str | None,
    export_format: str,
    encoding: str,
    cipher: str | None,
    export_password: str | None,
) -> None:
    """Export the credentials in CERT_FILE (and --key) to OUTPUT."""
    from certvault.credentials.exporter import CredentialExporter
    from certvault.credentials.formats import (
        EncodingType,
        ExportFormat,
        PKCS8Cipher,
        PKCS12Cipher,
    )

    fmt = ExportFormat(export_format)
    selected_cipher: PKCS8Cipher | PKCS12Cipher | None = None
    if cipher is not None:
        choices = PKCS12Cipher if fmt is ExportFormat.PKCS12 else PKCS8Cipher
        try:
            selected_cipher = choices[cipher.upper()]
        except KeyError:
            valid = ", ".join(member.name for member in choices)
            raise click.BadParameter(f"{cipher!r} is not one of {valid}", param_hint="--cipher")

    try:
        bundle = _open_bundle(ctx, cert_file, key_file, password)
        exporter = CredentialExporter(ctx.obj["crypto"], activity_log=ctx.obj["activity_log"])
        exporter.export_to_file(
            bundle,
            output,
            fmt,
            encoding=EncodingType(encoding),
            cipher=selected_cipher,
            password=export_password,
        )
    except CertVaultError as exc:
        _fail(str(exc))
        return

    console.print(f"[green]Exported[/green] {fmt.value} to [bold]{output}[/bold]")


# ------------------------------------------------------------------
# template command group
# ------------------------------------------------------------------


@cli.group(name="template")
def template_group() -> None:
    """Work with stored certificate templates."""


@template_group.command(name="show")
@click.argument("template_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def template_show_command(template_file: Path) -> None:
    """Display the certificate template stored in TEMPLATE_FILE."""
    from certvault.requests.model import CertificateTemplate
    from certvault.requests.usage import ExtendedKeyUsage

    try:
        template = CertificateTemplate.load(template_file)
    except CertVaultError as exc:
        _fail(str(exc))
        return

    crl_point = template.crl_distribution_point()
    table = Table(title=template.description or template_file.name, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Subject", template.subject.rfc4514_string())
    table.add_row("Key type", template.key_type.value if template.key_type else "(any)")
    table.add_row("Key usage", ", ".join(template.key_usage.names()) or "(none)")
    table.add_row(
        "Extended key usage",
        ", ".join(ExtendedKeyUsage.describe(oid) for oid in template.extended_key_usage)
        or "(none)",
    )
    table.add_row(
        "Subject alt names",
        ", ".join(f"{entry.tag.name}:{entry.value}" for entry in template.subject_alt_names)
        or "(none)",
    )
    table.add_row("CA request", "Yes" if template.is_ca_request else "No")
    crl_text = crl_point.status.value
    if crl_point.reason:
        crl_text += f" ({crl_point.reason})"
    table.add_row("CRL distribution point", crl_text)
    if template.created_at is not None:
        table.add_row("Created", template.created_at.isoformat())
    console.print(table)


if __name__ == "__main__":
    cli()
