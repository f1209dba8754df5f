"""
Manifest Generator CLI - Command-line interface.

Serve the upload service, inspect packages and manage buckets from the
terminal.
"""

import shutil
import tempfile
import time
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from manifest_generator.config import Settings, load_settings
from manifest_generator.core.exceptions import ManifestGeneratorError, StorageError
from manifest_generator.core.models import AppMetadata
from manifest_generator.inspector.archive import ArchiveInspector
from manifest_generator.pipeline.orchestrator import Orchestrator
from manifest_generator.storage.client import create_s3_client
from manifest_generator.version import __version__

app = typer.Typer(
    name="manifest-generator",
    help="Manifest Generator - Ephemeral over-the-air installs for iOS packages",
    no_args_is_help=True,
)
console = Console()


def _load(config: Optional[Path]) -> Settings:
    try:
        return load_settings(config)
    except ManifestGeneratorError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(1)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to listen on"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config file"),
):
    """Run the upload service."""
    import uvicorn

    from manifest_generator.api.app import create_app

    settings = _load(config)
    bind_host = host or settings.http_host
    bind_port = port or settings.http_port
    console.print(f"Starting server on {bind_host}:{bind_port}...")
    uvicorn.run(create_app(settings), host=bind_host, port=bind_port, log_level=settings.log_level.lower())


@app.command()
def inspect(
    archive: Path = typer.Argument(..., help="Path to the .ipa package"),
    all_keys: bool = typer.Option(False, "--all", "-a", help="Show every Info.plist key"),
):
    """Show the metadata of a package without publishing it."""
    console.print(
        Panel.fit(
            f"[bold blue]Package Inspection[/bold blue]\n"
            f"Path: {archive}",
        )
    )

    if not archive.exists():
        console.print(f"[red]Path does not exist: {archive}[/red]")
        raise typer.Exit(1)

    inspector = ArchiveInspector()
    try:
        properties, strategy = inspector.read_properties(archive)
    except ManifestGeneratorError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    metadata = AppMetadata.from_properties(properties)

    table = Table(title="Application Metadata")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Display name", metadata.display_name or "[dim](missing)[/dim]")
    table.add_row("Bundle ID", metadata.bundle_id or "[dim](missing)[/dim]")
    table.add_row("Version", metadata.version or "[dim](missing)[/dim]")
    table.add_row("Encoding", strategy.value)
    console.print(table)

    if all_keys:
        keys = Table(title="Info.plist")
        keys.add_column("Key", style="cyan")
        keys.add_column("Value")
        for key in sorted(properties):
            keys.add_row(key, str(properties[key]))
        console.print(keys)


@app.command()
def publish(
    archive: Path = typer.Argument(..., help="Path to the .ipa package"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config file"),
    keep: bool = typer.Option(
        False, "--keep", help="Do not wait for deletion; leave it to the sweep or lifecycle rule"
    ),
):
    """
    Publish a package and print its install link.

    A staged copy of the package goes through the pipeline; the original
    file is left untouched. Unless --keep is given, the command waits
    until the bucket has been deleted.
    """
    if not archive.exists():
        console.print(f"[red]Path does not exist: {archive}[/red]")
        raise typer.Exit(1)

    settings = _load(config)
    orchestrator = Orchestrator.from_settings(settings, create_s3_client(settings))

    fd, staged = tempfile.mkstemp(suffix=".ipa")
    with open(fd, "wb") as out, open(archive, "rb") as src:
        shutil.copyfileobj(src, out)

    result = orchestrator.run(Path(staged), archive.name)
    if not result.succeeded:
        console.print(f"[red]Publishing failed:[/red] {result.error}")
        raise typer.Exit(1)

    table = Table(title="Published Artifacts")
    table.add_column("Key", style="cyan")
    table.add_column("URL", style="green")
    for artifact in result.artifacts:
        table.add_row(artifact.key, artifact.url)
    console.print(table)
    console.print(f"\n[bold]Install link:[/bold] {result.install_link.href}")
    console.print(f"Expires in {orchestrator.expiration.describe()}")

    if keep:
        orchestrator.scheduler.shutdown()
        return

    console.print("[dim]Waiting for expiration (Ctrl+C to stop waiting)...[/dim]")
    try:
        while orchestrator.scheduler.pending():
            time.sleep(1)
        console.print(f"[green]Bucket {result.bucket} deleted[/green]")
    except KeyboardInterrupt:
        orchestrator.scheduler.shutdown()
        console.print("[yellow]Stopped waiting; bucket left to the lifecycle rule[/yellow]")


@app.command()
def sweep(
    all_buckets: bool = typer.Option(
        False, "--all", help="Delete every visible bucket, not only service buckets"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config file"),
):
    """Delete buckets left behind by earlier runs."""
    scope = "ALL buckets visible to these credentials" if all_buckets else "all 'apps-' buckets"
    if not yes and not typer.confirm(f"Delete {scope}?"):
        raise typer.Exit(1)

    settings = _load(config)
    orchestrator = Orchestrator.from_settings(settings, create_s3_client(settings))
    try:
        result = orchestrator.provisioner.destroy_all(prefix_only=not all_buckets)
    except StorageError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    table = Table(title="Recovery Sweep")
    table.add_column("Bucket", style="cyan")
    table.add_column("Result")
    for name in sorted(result.destroyed):
        table.add_row(name, "[green]deleted[/green]")
    for name, error in sorted(result.failed.items()):
        table.add_row(name, f"[red]{error}[/red]")
    console.print(table)
    console.print(f"Skipped: {len(result.skipped)}")

    if not result.success:
        raise typer.Exit(1)


@app.command()
def version():
    """Show version information."""
    console.print(f"[bold blue]Manifest Generator[/bold blue] v{__version__}")


def main():
    app()


if __name__ == "__main__":
    main()
