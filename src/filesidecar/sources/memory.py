"""
In-memory desired-state source.

Example:
    source = InMemorySource()
    source.add_handler(queue.add)

    async with source:
        source.set("default/plugins", {"a.jar": "https://example.com/a.jar"})
        state, exists = await source.get("default/plugins")
"""

from __future__ import annotations

from typing import Dict, Mapping, Optional, Tuple

from filesidecar.sources.base import DesiredState, DesiredStateSource


class InMemorySource(DesiredStateSource):
    """
    Desired state held in a dict.

    Every ``set`` and ``delete`` notifies handlers, including sets that do not
    change the value.
    """

    def __init__(self, initial: Optional[Mapping[str, Mapping[str, str]]] = None):
        super().__init__()
        self._objects: Dict[str, DesiredState] = {k: dict(v) for k, v in (initial or {}).items()}
        self._running = False

    async def start(self) -> None:
        self._running = True
        # Initial listing: every existing object counts as added
        for key in list(self._objects):
            self._notify(key)
        self._mark_synced()

    async def stop(self) -> None:
        self._running = False

    async def get(self, key: str) -> Tuple[DesiredState, bool]:
        if key not in self._objects:
            return {}, False
        return dict(self._objects[key]), True

    def set(self, key: str, files: Mapping[str, str]) -> None:
        """Create or replace the object under ``key``."""
        self._objects[key] = dict(files)
        if self._running:
            self._notify(key)

    def delete(self, key: str) -> None:
        """Remove the object under ``key``."""
        self._objects.pop(key, None)
        if self._running:
            self._notify(key)

    @property
    def keys(self) -> list[str]:
        return sorted(self._objects)
