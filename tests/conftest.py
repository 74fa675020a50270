"""
Shared fixtures: a scripted fetcher, a recording file store, a fresh metrics registry.
"""

from contextlib import asynccontextmanager
from pathlib import Path

import pytest

from filesidecar.exceptions import FetchError
from filesidecar.fetch.base import Fetcher
from filesidecar.observability.metrics import SidecarMetrics
from filesidecar.sources.memory import InMemorySource
from filesidecar.storage.filestore import LocalFileStore

KEY = "default/my-config-map"


class FakeFetcher(Fetcher):
    """
    Serves scripted content per source.

    ``contents[source]`` is bytes, a list of chunks (an Exception in the list
    is raised mid-stream), or an Exception raised on open. Unknown sources
    fail like an HTTP 404. ``failures[source] = n`` makes the first n opens
    of a source fail before content is served.
    """

    def __init__(self, contents=None):
        self.contents = dict(contents or {})
        self.failures: dict[str, int] = {}
        self.opened: list[str] = []
        self.connected = False
        self.closed = False

    async def connect(self) -> None:
        self.connected = True

    async def close(self) -> None:
        self.closed = True

    @asynccontextmanager
    async def open(self, source):
        self.opened.append(source)
        if self.failures.get(source, 0) > 0:
            self.failures[source] -= 1
            raise FetchError(source, "connection reset")
        if source not in self.contents:
            raise FetchError(source, "HTTP 404 Not Found", status=404)
        value = self.contents[source]
        if isinstance(value, Exception):
            raise value
        chunks = [value] if isinstance(value, bytes) else list(value)

        async def stream():
            for chunk in chunks:
                if isinstance(chunk, Exception):
                    raise chunk
                yield chunk

        yield stream()


class RecordingFileStore(LocalFileStore):
    """LocalFileStore that records mutations and can fail deletes for chosen names."""

    def __init__(self, directory):
        super().__init__(directory)
        self.mutations: list[tuple[str, str]] = []
        self.fail_delete: set[str] = set()

    def create_atomic(self, name):
        self.mutations.append(("create", name))
        return super().create_atomic(name)

    def delete(self, name):
        self.mutations.append(("delete", name))
        if name in self.fail_delete:
            raise PermissionError(13, "Permission denied", name)
        return super().delete(name)


def dir_listing(path: Path) -> set[str]:
    """Every entry on disk, temporary files included."""
    return {p.name for p in path.iterdir()}


@pytest.fixture
def target_dir(tmp_path):
    directory = tmp_path / "downloads"
    directory.mkdir()
    return directory


@pytest.fixture
def file_store(target_dir):
    return RecordingFileStore(target_dir)


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def source():
    return InMemorySource()


@pytest.fixture
def metrics():
    return SidecarMetrics()
