"""
Reconciler: converge the target directory onto the desired state of one key.

One pass:

1. Read the desired state for the key. A missing key means "no files".
2. List the directory. If that fails the pass stops; nothing is diffed.
3. Diff by name.
4. Delete every unwanted file, collecting failures.
5. Download every missing file, collecting failures, regardless of step 4.
6. Raise DeleteError if any deletion failed, else DownloadError if any
   download failed.

The directory is listed fresh on every pass, so retrying a partially
successful pass only repeats the files that are still missing.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from filesidecar.core.diff import Diff, compute_diff
from filesidecar.exceptions import (
    DeleteError,
    DownloadError,
    ListError,
    ReconcileError,
    SourceUnavailableError,
)
from filesidecar.fetch.base import Fetcher
from filesidecar.observability.metrics import SidecarMetrics
from filesidecar.sources.base import DesiredStateSource
from filesidecar.storage.filestore import FileStore
from filesidecar.utils.logging import get_logger

logger = get_logger("filesidecar.reconciler")

_OUTCOMES = {
    ListError: "list_error",
    SourceUnavailableError: "source_error",
    DeleteError: "delete_error",
    DownloadError: "download_error",
}


@dataclass
class ReconcileResult:
    """Summary of a successful pass."""

    key: str
    exists: bool
    diff: Diff
    downloaded: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    bytes_downloaded: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.downloaded or self.deleted)


class Reconciler:
    """
    Drives a FileStore and a Fetcher toward the desired state held by a source.

    Args:
        source: Where desired state is read from
        file_store: The target directory
        fetcher: Opens source locations for download
        metrics: Optional metrics sink
    """

    def __init__(
        self,
        source: DesiredStateSource,
        file_store: FileStore,
        fetcher: Fetcher,
        *,
        metrics: SidecarMetrics | None = None,
    ):
        self.source = source
        self.file_store = file_store
        self.fetcher = fetcher
        self.metrics = metrics

    async def reconcile(self, key: str) -> ReconcileResult:
        """
        Run one reconciliation pass for ``key``.

        Raises:
            SourceUnavailableError: Desired state could not be read
            ListError: Target directory could not be listed
            DeleteError: At least one deletion failed (downloads still ran)
            DownloadError: At least one download failed
        """
        if self.metrics is None:
            return await self._reconcile(key)

        with self.metrics.time_reconcile():
            try:
                result = await self._reconcile(key)
            except ReconcileError as e:
                self.metrics.reconcile_total.labels(outcome=_OUTCOMES.get(type(e), "error")).inc()
                raise
        self.metrics.reconcile_total.labels(outcome="success").inc()
        return result

    async def _reconcile(self, key: str) -> ReconcileResult:
        try:
            desired, exists = await self.source.get(key)
        except OSError as e:
            raise SourceUnavailableError(key, f"Cannot read desired state: {e}") from e
        if not exists:
            logger.info(f"{key} does not exist anymore, removing all files")
        else:
            logger.info(f"Received event for {key} ({len(desired)} file(s) desired)")
            for name, location in sorted(desired.items()):
                logger.debug(f"    {name}={location}")

        try:
            actual = await asyncio.to_thread(self.file_store.list)
        except OSError as e:
            logger.error(f"Failed to list files in {self.file_store}: {e}")
            raise ListError(key, f"Failed to list target directory: {e}") from e

        diff = compute_diff(desired, actual)
        for name in diff.to_delete:
            logger.info(f"{name} found on disk but not in desired state => should be deleted")
        for name in diff.to_download:
            logger.info(f"{name} found in desired state but not on disk => should be downloaded")

        result = ReconcileResult(key=key, exists=exists, diff=diff)

        # Both phases run to completion before any error is raised, so one bad
        # file never blocks the others
        delete_failures = await self._delete_files(diff.to_delete, result)
        download_failures = await self._download_files(diff.to_download, result)

        if delete_failures:
            logger.warning(f"{len(delete_failures)} file(s) failed to delete for {key}")
            raise DeleteError(key, delete_failures)
        if download_failures:
            logger.warning(f"{len(download_failures)} file(s) failed to download for {key}")
            raise DownloadError(key, download_failures)

        if result.changed:
            logger.info(f"{key} reconciled: {len(result.downloaded)} downloaded, {len(result.deleted)} deleted")
        else:
            logger.debug(f"{key} already in sync")
        return result

    async def _delete_files(self, names: list[str], result: ReconcileResult) -> dict[str, Exception]:
        failures: dict[str, Exception] = {}
        for name in names:
            logger.info(f"Deleting file {name}")
            try:
                await asyncio.to_thread(self.file_store.delete, name)
            except Exception as e:
                logger.error(f"Failed to delete file {name}: {e}")
                failures[name] = e
                self._record_file("delete", False)
                continue
            result.deleted.append(name)
            self._record_file("delete", True)
        return failures

    async def _download_files(self, files: dict[str, str], result: ReconcileResult) -> dict[str, Exception]:
        failures: dict[str, Exception] = {}
        for name, source in files.items():
            logger.info(f"Downloading file {name} from {source}")
            try:
                written = await self.download(name, source)
            except Exception as e:
                logger.error(f"Failed to download {name} from {source}: {e}")
                failures[name] = e
                self._record_file("download", False)
                continue
            result.downloaded.append(name)
            result.bytes_downloaded += written
            self._record_file("download", True)
            if self.metrics:
                self.metrics.bytes_downloaded.inc(written)
        return failures

    async def download(self, name: str, source: str) -> int:
        """
        Stream ``source`` into ``name`` via a temporary file and rename it into place.

        Returns:
            Bytes written
        """
        opening = asyncio.ensure_future(asyncio.to_thread(self.file_store.create_atomic, name))
        try:
            writer = await asyncio.shield(opening)
        except asyncio.CancelledError:
            # The thread still finishes opening the temp file; discard it then
            opening.add_done_callback(_abort_opened_writer)
            raise

        try:
            async with self.fetcher.open(source) as chunks:
                async for chunk in chunks:
                    await asyncio.to_thread(writer.write, chunk)
            await asyncio.to_thread(writer.commit)
        except Exception:
            await asyncio.to_thread(writer.abort)
            raise
        finally:
            # Cancellation lands here without another await
            if not writer.committed:
                writer.abort()
        logger.debug(f"Wrote {writer.bytes_written} bytes to {name}")
        return writer.bytes_written

    def _record_file(self, operation: str, success: bool) -> None:
        if self.metrics:
            self.metrics.record_file(operation, success)


def _abort_opened_writer(opening: asyncio.Future) -> None:
    if opening.cancelled() or opening.exception() is not None:
        return
    opening.result().abort()
