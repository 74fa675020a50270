"""
Desired state read from YAML manifests in a directory tree, polled for changes.

Layout: the object ``<namespace>/<name>`` lives in
``<root>/<namespace>/<name>.yaml`` (``.yml`` also accepted). Two document
shapes are understood::

    # flat
    plugin-a.jar: https://repo.example.com/a.jar

    # ConfigMap-shaped
    apiVersion: v1
    kind: ConfigMap
    metadata: {name: plugins}
    data:
      plugin-a.jar: https://repo.example.com/a.jar

Changes are detected by (mtime, size) of the manifest file; appearing,
changing and disappearing manifests each notify handlers with the key.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple

import yaml

from filesidecar.exceptions import InitializationError, SourceUnavailableError
from filesidecar.sources.base import DesiredState, DesiredStateSource
from filesidecar.utils.logging import get_logger

logger = get_logger("filesidecar.sources.manifest")

MANIFEST_SUFFIXES = (".yaml", ".yml")

Fingerprint = Tuple[int, int]


def split_key(key: str) -> Tuple[str, str]:
    """Split ``namespace/name``; raises ValueError on anything else."""
    namespace, sep, name = key.partition("/")
    if not sep or not namespace or not name or "/" in name or namespace in (".", "..") or name in (".", ".."):
        raise ValueError(f"key must look like '<namespace>/<name>', got {key!r}")
    return namespace, name


class ManifestDirectorySource(DesiredStateSource):
    """
    Polls a manifest directory and reports changed keys.

    Args:
        root: Directory holding one subdirectory per namespace
        keys: Restrict watching to these keys (None = every manifest found)
        poll_interval: Seconds between scans
    """

    def __init__(
        self,
        root: str | Path,
        *,
        keys: Optional[Iterable[str]] = None,
        poll_interval: float = 2.0,
    ):
        super().__init__()
        self.root = Path(root)
        self.keys = sorted(keys) if keys is not None else None
        for key in self.keys or []:
            split_key(key)
        self.poll_interval = poll_interval
        self._fingerprints: Dict[str, Fingerprint] = {}
        self._task: asyncio.Task | None = None
        self._stopping = asyncio.Event()

    async def start(self) -> None:
        if not self.root.is_dir():
            raise InitializationError(
                f"Manifest directory not found: {self.root}",
                details={"manifest_dir": str(self.root)},
            )
        try:
            await self.poll_once()
        except OSError as e:
            raise InitializationError(f"Cannot read manifest directory {self.root}: {e}") from e
        self._mark_synced()

        self._stopping.clear()
        self._task = asyncio.create_task(self._poll_loop(), name="manifest-poll")
        logger.info(f"Watching manifests in {self.root} every {self.poll_interval}s")

    async def stop(self) -> None:
        self._stopping.set()
        if self._task is not None:
            await self._task
            self._task = None

    async def get(self, key: str) -> Tuple[DesiredState, bool]:
        try:
            path = self._find_manifest(key)
        except (ValueError, OSError) as e:
            raise SourceUnavailableError(key, str(e)) from e
        if path is None:
            return {}, False
        try:
            text = await asyncio.to_thread(path.read_text)
        except FileNotFoundError:
            return {}, False
        except OSError as e:
            raise SourceUnavailableError(key, f"Cannot read manifest {path}: {e}") from e
        return self._parse(key, path, text), True

    async def poll_once(self) -> list[str]:
        """
        Scan once and notify handlers of every changed key.

        Returns:
            The keys that changed, sorted
        """
        current = await asyncio.to_thread(self._scan)
        changed = sorted(
            key
            for key in set(current) | set(self._fingerprints)
            if current.get(key) != self._fingerprints.get(key)
        )
        self._fingerprints = current
        for key in changed:
            logger.debug(f"Manifest for {key} changed")
            self._notify(key)
        return changed

    async def _poll_loop(self) -> None:
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.poll_interval)
                break
            except asyncio.TimeoutError:
                pass
            try:
                await self.poll_once()
            except OSError as e:
                # Keep the previous fingerprints so nothing is reported deleted
                logger.error(f"Manifest scan of {self.root} failed: {e}")

    def _scan(self) -> Dict[str, Fingerprint]:
        fingerprints: Dict[str, Fingerprint] = {}
        if self.keys is not None:
            # _find_manifest raises on a missing directory, which keeps the
            # previous fingerprints instead of reporting the keys deleted
            for key in self.keys:
                path = self._find_manifest(key)
                if path is not None:
                    fp = _fingerprint(path)
                    if fp is not None:
                        fingerprints[key] = fp
            return fingerprints

        with os.scandir(self.root) as namespaces:
            for ns_entry in namespaces:
                if not ns_entry.is_dir():
                    continue
                with os.scandir(ns_entry.path) as manifests:
                    for entry in manifests:
                        stem, suffix = os.path.splitext(entry.name)
                        if suffix not in MANIFEST_SUFFIXES or not entry.is_file():
                            continue
                        fp = _fingerprint(Path(entry.path))
                        if fp is not None:
                            fingerprints[f"{ns_entry.name}/{stem}"] = fp
        return fingerprints

    def _find_manifest(self, key: str) -> Path | None:
        """
        Locate the manifest for ``key``; None means the object does not exist.

        A missing root or namespace directory raises FileNotFoundError
        instead, so an unmounted tree is never read as "every object deleted".
        """
        namespace, name = split_key(key)
        directory = self.root / namespace
        for required in (self.root, directory):
            if not required.is_dir():
                raise FileNotFoundError(f"Manifest directory not found: {required}")
        for suffix in MANIFEST_SUFFIXES:
            path = directory / f"{name}{suffix}"
            if path.is_file():
                return path
        return None

    @staticmethod
    def _parse(key: str, path: Path, text: str) -> DesiredState:
        try:
            document = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise SourceUnavailableError(key, f"Invalid YAML in {path}: {e}") from e

        if document is None:
            return {}
        if not isinstance(document, dict):
            raise SourceUnavailableError(key, f"Manifest {path} must be a mapping, got {type(document).__name__}")

        files: Any = document.get("data", {}) if _is_object_document(document) else document
        if files is None:
            return {}
        if not isinstance(files, dict):
            raise SourceUnavailableError(key, f"'data' in {path} must be a mapping")

        desired: DesiredState = {}
        for name, location in files.items():
            if isinstance(location, (dict, list)) or location is None:
                raise SourceUnavailableError(key, f"Source for {name!r} in {path} must be a string")
            desired[str(name)] = str(location)
        return desired


def _is_object_document(document: dict) -> bool:
    if "data" not in document or not isinstance(document["data"], (dict, type(None))):
        return False
    return "kind" in document or "metadata" in document or len(document) == 1


def _fingerprint(path: Path) -> Fingerprint | None:
    try:
        st = path.stat()
    except FileNotFoundError:
        return None
    return st.st_mtime_ns, st.st_size
