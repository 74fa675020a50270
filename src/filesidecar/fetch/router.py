"""
Scheme-based fetcher routing.
"""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import AsyncIterator, Dict
from urllib.parse import urlparse

from filesidecar.exceptions import FetchError
from filesidecar.fetch.base import Fetcher
from filesidecar.fetch.http import HttpFetcher
from filesidecar.fetch.local import FileFetcher


class SchemeFetcher(Fetcher):
    """
    Dispatches each source to the fetcher registered for its URL scheme.

    A source without a scheme is looked up under ``"file"``.
    """

    def __init__(self, routes: Dict[str, Fetcher]):
        self.routes = {scheme.lower(): fetcher for scheme, fetcher in routes.items()}

    def fetcher_for(self, source: str) -> Fetcher:
        scheme = urlparse(source).scheme.lower() or "file"
        fetcher = self.routes.get(scheme)
        if fetcher is None:
            raise FetchError(source, f"unsupported scheme {scheme!r}; supported: {sorted(self.routes)}")
        return fetcher

    def open(self, source: str) -> AbstractAsyncContextManager[AsyncIterator[bytes]]:
        return self.fetcher_for(source).open(source)

    async def connect(self) -> None:
        for fetcher in self._unique():
            await fetcher.connect()

    async def close(self) -> None:
        for fetcher in self._unique():
            await fetcher.close()

    def _unique(self) -> list[Fetcher]:
        seen: list[Fetcher] = []
        for fetcher in self.routes.values():
            if not any(fetcher is s for s in seen):
                seen.append(fetcher)
        return seen


def build_default_fetcher(timeout: float = 300.0, chunk_size: int = 64 * 1024) -> SchemeFetcher:
    """http, https and file sources."""
    http = HttpFetcher(timeout=timeout, chunk_size=chunk_size)
    return SchemeFetcher({"http": http, "https": http, "file": FileFetcher(chunk_size=chunk_size)})
