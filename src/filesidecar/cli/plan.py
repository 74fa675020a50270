"""
filesidecar plan - preview the next reconciliation pass.

Reads the desired state and the target directory once and prints what a
pass would download and delete. Nothing is changed on disk.
"""

import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from filesidecar.cli.common import (
    ConfigMapOption,
    ConfigOption,
    DownloadPathOption,
    ManifestDirOption,
    NamespaceOption,
    load_settings,
)
from filesidecar.config.settings import SidecarSettings
from filesidecar.core.diff import Diff, compute_diff
from filesidecar.exceptions import InitializationError, SidecarError
from filesidecar.sources.manifest import ManifestDirectorySource
from filesidecar.storage.filestore import LocalFileStore

console = Console()


async def build_plan(settings: SidecarSettings) -> tuple[bool, Diff]:
    """
    Diff the watched object against the download directory.

    A download directory that does not exist yet counts as empty.

    Returns:
        (whether the object exists, diff)
    """
    if settings.manifest_dir is None:
        raise InitializationError(
            "No manifest directory configured; pass --manifest-dir or set FILESIDECAR_MANIFEST_DIR"
        )
    if not settings.manifest_dir.is_dir():
        raise InitializationError(f"Manifest directory not found: {settings.manifest_dir}")

    source = ManifestDirectorySource(settings.manifest_dir, keys=[settings.key])
    desired, exists = await source.get(settings.key)
    try:
        actual = await asyncio.to_thread(LocalFileStore(settings.download_path).list)
    except FileNotFoundError:
        actual = []
    return exists, compute_diff(desired, actual)


def plan(
    config_file: Path | None = ConfigOption,
    namespace: str | None = NamespaceOption,
    config_map: str | None = ConfigMapOption,
    download_path: Path | None = DownloadPathOption,
    manifest_dir: Path | None = ManifestDirOption,
    output_format: str = typer.Option("table", "--format", help="Output format: table, json"),
) -> None:
    """
    Show what the next pass would download and delete.

    Examples:
        filesidecar plan --manifest-dir ./manifests
        filesidecar plan --config sidecar.yaml --format json
    """
    overrides = {
        "namespace": namespace,
        "config_map": config_map,
        "download_path": download_path,
        "manifest_dir": manifest_dir,
        # Quiet unless something goes wrong
        "logging": {"level": "WARNING"},
    }
    try:
        settings = load_settings(config_file, overrides)
        exists, diff = asyncio.run(build_plan(settings))
    except (SidecarError, OSError) as e:
        typer.secho(f"Error: {getattr(e, 'message', e)}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from None

    if output_format == "json":
        typer.echo(
            json.dumps(
                {
                    "key": settings.key,
                    "exists": exists,
                    "download": diff.to_download,
                    "delete": diff.to_delete,
                },
                indent=2,
            )
        )
        return

    if not exists:
        console.print(f"[yellow]{settings.key} does not exist; every file will be removed[/yellow]")
    if diff.empty:
        console.print(f"[green]{settings.download_path} is in sync with {settings.key}[/green]")
        return

    table = Table(title=f"Plan for {settings.key}")
    table.add_column("Action", style="bold")
    table.add_column("File")
    table.add_column("Source", style="dim")
    for name, source in diff.to_download.items():
        table.add_row("[green]download[/green]", name, source)
    for name in diff.to_delete:
        table.add_row("[red]delete[/red]", name, "")
    console.print(table)
    console.print(f"{len(diff.to_download)} to download, {len(diff.to_delete)} to delete")
