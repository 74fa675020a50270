"""
filesidecar run - long-running sync process.

Watches one desired-state object (``<namespace>/<config-map>``) and keeps
``--download-path`` in sync with it until SIGINT/SIGTERM.
"""

import asyncio
import contextlib
import signal
from pathlib import Path

import typer

from filesidecar.cli.common import (
    ConfigMapOption,
    ConfigOption,
    DownloadPathOption,
    ManifestDirOption,
    NamespaceOption,
    load_settings,
)
from filesidecar.controller import Controller
from filesidecar.exceptions import SidecarError
from filesidecar.observability.metrics import get_metrics
from filesidecar.utils.logging import get_logger

logger = get_logger("filesidecar.cli.run")


def run(
    config_file: Path | None = ConfigOption,
    namespace: str | None = NamespaceOption,
    config_map: str | None = ConfigMapOption,
    download_path: Path | None = DownloadPathOption,
    manifest_dir: Path | None = ManifestDirOption,
    workers: int | None = typer.Option(None, help="Number of concurrent workers [default: 1]"),
    poll_interval: float | None = typer.Option(None, "--poll-interval", help="Seconds between manifest scans"),
    metrics_port: int | None = typer.Option(None, "--metrics-port", help="Serve Prometheus metrics on this port"),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging"),
) -> None:
    """
    Keep a directory in sync with a desired-state object until stopped.

    Exits with status 1 if configuration is invalid or the desired-state
    backend cannot be reached at startup.
    """
    overrides = {
        "namespace": namespace,
        "config_map": config_map,
        "download_path": download_path,
        "manifest_dir": manifest_dir,
        "workers": workers,
        "poll_interval": poll_interval,
    }
    if metrics_port is not None:
        overrides["metrics"] = {"enabled": True, "port": metrics_port}
    if verbose:
        overrides["logging"] = {"level": "DEBUG"}

    try:
        settings = load_settings(config_file, overrides)
        for name, value in settings.describe().items():
            logger.info(f"Parameter --{name} set to: {value}")

        metrics = get_metrics()
        if settings.metrics.enabled:
            metrics.start_http_server(settings.metrics.port)

        controller = Controller.from_settings(settings, metrics=metrics)
        asyncio.run(serve(controller))
    except (SidecarError, OSError) as e:
        typer.secho(f"Error: {getattr(e, 'message', e)}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from None


async def serve(controller: Controller) -> None:
    """Run ``controller`` until SIGINT or SIGTERM."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on every platform/loop
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, stop.set)
    await controller.run(stop)
