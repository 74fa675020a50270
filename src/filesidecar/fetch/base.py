"""
Fetcher interface: open a source location as a stream of byte chunks.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import AsyncIterator


class Fetcher(ABC):
    """
    Retrieves the bytes behind a source location.

    ``open`` returns an async context manager yielding an async iterator of
    chunks. Failures to open or read raise ``FetchError``::

        async with fetcher.open("https://example.com/a.jar") as chunks:
            async for chunk in chunks:
                ...
    """

    @abstractmethod
    def open(self, source: str) -> AbstractAsyncContextManager[AsyncIterator[bytes]]:
        """Open ``source`` for streaming."""

    async def connect(self) -> None:
        """Acquire any long-lived resources. No-op by default."""

    async def close(self) -> None:
        """Release resources acquired by ``connect``. No-op by default."""

    async def __aenter__(self) -> Fetcher:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
