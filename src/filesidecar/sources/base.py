"""
Base desired-state source interface.

A source owns the desired mapping (file name -> source location) for one or
more keys. It notifies registered handlers when a key is added, updated or
deleted, and answers ``get(key)`` with the current value. Handlers receive
only the key; consumers always re-read through ``get``.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Tuple

from filesidecar.utils.logging import get_logger

logger = get_logger("filesidecar.sources")

DesiredState = Dict[str, str]
ChangeHandler = Callable[[str], None]


class DesiredStateSource(ABC):
    """
    Abstract base class for desired-state backends.

    Implementations provided:
    - InMemorySource: in-process mapping, for tests and embedding
    - ManifestDirectorySource: YAML manifests on disk, polled for changes
    """

    def __init__(self) -> None:
        self._handlers: List[ChangeHandler] = []
        self._synced = asyncio.Event()

    def add_handler(self, handler: ChangeHandler) -> None:
        """Register a callback invoked with the key of every changed object."""
        self._handlers.append(handler)

    def _notify(self, key: str) -> None:
        for handler in self._handlers:
            try:
                handler(key)
            except Exception:
                logger.exception(f"Change handler failed for {key}")

    def _mark_synced(self) -> None:
        self._synced.set()

    @property
    def has_synced(self) -> bool:
        """True once the initial listing has been delivered to handlers."""
        return self._synced.is_set()

    async def wait_for_sync(self, timeout: float | None = None) -> bool:
        """Wait for the initial listing. Returns False on timeout."""
        try:
            await asyncio.wait_for(self._synced.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    @abstractmethod
    async def get(self, key: str) -> Tuple[DesiredState, bool]:
        """
        Current desired state for ``key``.

        Returns:
            (mapping, exists). A deleted or never-created key is ``({}, False)``.

        Raises:
            SourceUnavailableError: If the state cannot be read
        """

    @abstractmethod
    async def start(self) -> None:
        """Begin watching. Raises InitializationError if the backend is unreachable."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop watching and release resources."""

    async def __aenter__(self) -> DesiredStateSource:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
