"""
Configuration file loading.

The sidecar reads at most one YAML file; command-line options are merged on
top with ``Config.merged``.
"""

from pathlib import Path
from typing import Any, Mapping

import yaml

from filesidecar.config.resolver import resolve_config
from filesidecar.exceptions import ConfigurationError

_MISSING = object()


class Config:
    """
    Read-only view over a nested configuration mapping.

    Values are addressed with dotted paths (``config.get("backoff.max_delay")``);
    a null value counts as missing.
    """

    def __init__(self, data: Mapping[str, Any] | None = None):
        self.data: dict[str, Any] = dict(data or {})

    def _lookup(self, path: str) -> Any:
        node: Any = self.data
        for part in path.split("."):
            if not isinstance(node, dict) or node.get(part) is None:
                return _MISSING
            node = node[part]
        return node

    def get(self, path: str, default: Any = None) -> Any:
        value = self._lookup(path)
        return default if value is _MISSING else value

    def section(self, path: str) -> "Config":
        """Nested mapping at ``path`` as a Config; empty if absent or not a mapping."""
        value = self._lookup(path)
        return Config(value if isinstance(value, dict) else {})

    def __contains__(self, path: str) -> bool:
        return self._lookup(path) is not _MISSING

    def __getitem__(self, path: str) -> Any:
        value = self._lookup(path)
        if value is _MISSING:
            raise KeyError(f"Config key '{path}' not found")
        return value

    def merged(self, overrides: Mapping[str, Any]) -> "Config":
        """
        New Config with ``overrides`` merged over this one, recursively.

        Top-level ``None`` overrides are ignored so unset CLI options keep the
        file's values.
        """
        data = _merge(self.data, {k: v for k, v in overrides.items() if v is not None})
        return Config(data)

    def __repr__(self) -> str:
        return f"Config({self.data!r})"


def load_config(config_path: str | Path | None = None) -> Config:
    """
    Load the sidecar configuration file.

    Args:
        config_path: YAML file, or None for an empty configuration

    Returns:
        Config with ``${VAR}`` placeholders substituted

    Raises:
        ConfigurationError: If the file is missing, unreadable, invalid YAML,
            or not a mapping
    """
    if config_path is None:
        return Config()

    path = Path(config_path)
    details = {"path": str(path)}
    if not path.is_file():
        raise ConfigurationError(f"Configuration file not found: {path}", details=details)

    try:
        text = path.read_text()
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e}", details=details) from e

    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        if mark is not None:
            details.update(line=mark.line + 1, column=mark.column + 1)
            raise ConfigurationError(
                f"Invalid YAML in {path} at line {mark.line + 1}, column {mark.column + 1}",
                details=details,
            ) from e
        raise ConfigurationError(f"Invalid YAML in {path}: {e}", details=details) from e

    if document is None:
        return Config()
    if not isinstance(document, dict):
        raise ConfigurationError(
            f"Configuration must be a mapping, got {type(document).__name__}",
            details=details,
        )
    return Config(resolve_config(document))


def _merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged = {k: (_merge(v, {}) if isinstance(v, dict) else v) for k, v in base.items()}
    for key, value in override.items():
        if isinstance(merged.get(key), dict) and isinstance(value, dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged
