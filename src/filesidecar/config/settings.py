"""
Typed runtime settings built from a Config.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from filesidecar.config.loader import Config
from filesidecar.exceptions import ConfigurationError

MANIFEST_DIR_ENV = "FILESIDECAR_MANIFEST_DIR"


@dataclass(frozen=True)
class BackoffSettings:
    initial_delay: float = 0.005
    max_delay: float = 1000.0
    exponential_base: float = 2.0


@dataclass(frozen=True)
class RateLimitSettings:
    qps: float = 10.0
    burst: int = 100


@dataclass(frozen=True)
class FetchSettings:
    timeout: float = 300.0
    chunk_size: int = 64 * 1024


@dataclass(frozen=True)
class MetricsSettings:
    enabled: bool = False
    port: int = 9090


@dataclass(frozen=True)
class SidecarSettings:
    """
    Effective settings for one sidecar process.

    Defaults: namespace ``default``, config map ``my-config-map``, download
    path ``/tmp/downloads``.
    """

    namespace: str = "default"
    config_map: str = "my-config-map"
    download_path: Path = Path("/tmp/downloads")
    manifest_dir: Path | None = None
    workers: int = 1
    poll_interval: float = 2.0
    sync_timeout: float = 60.0
    shutdown_timeout: float = 30.0
    backoff: BackoffSettings = field(default_factory=BackoffSettings)
    rate_limit: RateLimitSettings = field(default_factory=RateLimitSettings)
    fetch: FetchSettings = field(default_factory=FetchSettings)
    metrics: MetricsSettings = field(default_factory=MetricsSettings)

    @property
    def key(self) -> str:
        """Reconciliation key of the watched desired-state object."""
        return f"{self.namespace}/{self.config_map}"

    @classmethod
    def from_config(cls, config: Config) -> SidecarSettings:
        """
        Build settings from a Config, validating every value.

        Raises:
            ConfigurationError: On a missing required value or a bad type/range
        """
        manifest_dir = _str(config, "manifest_dir", "") or os.getenv(MANIFEST_DIR_ENV)
        settings = cls(
            namespace=_str(config, "namespace", cls.namespace),
            config_map=_str(config, "config_map", cls.config_map),
            download_path=Path(_str(config, "download_path", str(cls.download_path))),
            manifest_dir=Path(manifest_dir) if manifest_dir else None,
            workers=_number(config, "workers", cls.workers, int, minimum=1),
            poll_interval=_number(config, "poll_interval", cls.poll_interval, float, minimum=0.01),
            sync_timeout=_number(config, "sync_timeout", cls.sync_timeout, float, minimum=0.0),
            shutdown_timeout=_number(config, "shutdown_timeout", cls.shutdown_timeout, float, minimum=0.0),
            backoff=BackoffSettings(
                initial_delay=_number(config, "backoff.initial_delay", BackoffSettings.initial_delay, float, minimum=0.0),
                max_delay=_number(config, "backoff.max_delay", BackoffSettings.max_delay, float, minimum=0.0),
                exponential_base=_number(
                    config, "backoff.exponential_base", BackoffSettings.exponential_base, float, minimum=1.0
                ),
            ),
            rate_limit=RateLimitSettings(
                qps=_number(config, "rate_limit.qps", RateLimitSettings.qps, float, minimum=0.0),
                burst=_number(config, "rate_limit.burst", RateLimitSettings.burst, int, minimum=1),
            ),
            fetch=FetchSettings(
                timeout=_number(config, "fetch.timeout", FetchSettings.timeout, float, minimum=0.0),
                chunk_size=_number(config, "fetch.chunk_size", FetchSettings.chunk_size, int, minimum=1),
            ),
            metrics=MetricsSettings(
                enabled=bool(config.get("metrics.enabled", MetricsSettings.enabled)),
                port=_number(config, "metrics.port", MetricsSettings.port, int, minimum=1),
            ),
        )
        if settings.backoff.max_delay < settings.backoff.initial_delay:
            raise ConfigurationError("backoff.max_delay must be >= backoff.initial_delay")
        for label, value in (("namespace", settings.namespace), ("config_map", settings.config_map)):
            if not value or "/" in value:
                raise ConfigurationError(f"{label} must be a non-empty name without '/', got {value!r}")
        return settings

    def describe(self) -> dict[str, Any]:
        """Flat view of the effective parameters for startup logging."""
        return {
            "namespace": self.namespace,
            "config-map": self.config_map,
            "download-path": str(self.download_path),
            "manifest-dir": str(self.manifest_dir) if self.manifest_dir else None,
            "workers": self.workers,
            "poll-interval": self.poll_interval,
        }


def _str(config: Config, key: str, default: str) -> str:
    value = config.get(key, default)
    if not isinstance(value, (str, os.PathLike)):
        raise ConfigurationError(f"{key} must be a string, got {type(value).__name__}", details={"key": key})
    return str(value)


def _number(config: Config, key: str, default: Any, kind: type, *, minimum: float) -> Any:
    raw = config.get(key, default)
    if isinstance(raw, bool):
        raise ConfigurationError(f"{key} must be a number, got {raw!r}", details={"key": key})
    try:
        value = kind(raw)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be a number, got {raw!r}", details={"key": key}) from None
    if value < minimum:
        raise ConfigurationError(f"{key} must be >= {minimum}, got {value}", details={"key": key})
    return value
