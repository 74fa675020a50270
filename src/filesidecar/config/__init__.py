"""
Configuration management.

YAML file parsing, environment resolution, typed settings.
"""

from filesidecar.config.loader import Config, load_config
from filesidecar.config.resolver import resolve_config
from filesidecar.config.settings import SidecarSettings

__all__ = [
    "load_config",
    "Config",
    "resolve_config",
    "SidecarSettings",
]
