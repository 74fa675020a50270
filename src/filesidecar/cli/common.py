"""
Settings loading shared by CLI commands.
"""

from pathlib import Path
from typing import Any

import typer

from filesidecar.config.loader import load_config
from filesidecar.config.settings import SidecarSettings
from filesidecar.utils.logging import setup_logging_from_config

ConfigOption = typer.Option(None, "--config", "-c", help="YAML config file")
NamespaceOption = typer.Option(None, help="Namespace of the desired-state object [default: default]")
ConfigMapOption = typer.Option(
    None, "--config-map", help="Name of the object listing files to download [default: my-config-map]"
)
DownloadPathOption = typer.Option(
    None, "--download-path", help="Directory files are downloaded to [default: /tmp/downloads]"
)
ManifestDirOption = typer.Option(None, "--manifest-dir", help="Root of the manifest tree (env: FILESIDECAR_MANIFEST_DIR)")


def load_settings(config_file: Path | None, overrides: dict[str, Any]) -> SidecarSettings:
    """
    Load the config file, apply CLI overrides, configure logging, validate.

    Raises:
        ConfigurationError: On an unreadable file or invalid values
    """
    overrides = {k: (str(v) if isinstance(v, Path) else v) for k, v in overrides.items()}
    config = load_config(config_file).merged(overrides)
    setup_logging_from_config(config.data)
    return SidecarSettings.from_config(config)
