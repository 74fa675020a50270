"""
Controller: wires a desired-state source to the work queue and the workers.

    source --(key)--> queue --> dispatcher --> reconciler --> {file store, fetcher}
"""

from __future__ import annotations

import asyncio

from filesidecar.config.settings import SidecarSettings
from filesidecar.core.dispatcher import Dispatcher
from filesidecar.core.reconciler import Reconciler
from filesidecar.core.retry import BackoffPolicy, default_controller_rate_limiter
from filesidecar.core.workqueue import RateLimitingQueue
from filesidecar.exceptions import InitializationError
from filesidecar.fetch import Fetcher, build_default_fetcher
from filesidecar.observability.metrics import SidecarMetrics
from filesidecar.sources import DesiredStateSource, ManifestDirectorySource
from filesidecar.storage import FileStore, LocalFileStore
from filesidecar.utils.logging import get_logger

logger = get_logger("filesidecar.controller")


class Controller:
    """
    Keeps one directory in sync with the desired state of one or more keys.

    Args:
        source: Desired-state source; every key it reports is reconciled
        file_store: Target directory
        fetcher: Used for downloads; connected and closed by ``run``
        queue: Work queue (default: controller rate limiter)
        workers: Number of concurrent workers
        sync_timeout: How long to wait for the source's initial listing
        shutdown_timeout: Grace period for in-flight passes on stop
        resync_keys: Keys enqueued once after the initial listing, so an
            absent object still converges the directory to empty
        metrics: Optional metrics sink
    """

    def __init__(
        self,
        source: DesiredStateSource,
        file_store: FileStore,
        fetcher: Fetcher,
        *,
        queue: RateLimitingQueue | None = None,
        workers: int = 1,
        sync_timeout: float = 60.0,
        shutdown_timeout: float = 30.0,
        resync_keys: tuple[str, ...] = (),
        metrics: SidecarMetrics | None = None,
    ):
        self.source = source
        self.file_store = file_store
        self.fetcher = fetcher
        self.queue = queue or RateLimitingQueue(metrics=metrics)
        self.sync_timeout = sync_timeout
        self.resync_keys = resync_keys
        self.reconciler = Reconciler(source, file_store, fetcher, metrics=metrics)
        self.dispatcher = Dispatcher(
            self.queue,
            self.reconciler,
            workers=workers,
            shutdown_timeout=shutdown_timeout,
            metrics=metrics,
        )
        self.source.add_handler(self.queue.add)

    @classmethod
    def from_settings(cls, settings: SidecarSettings, *, metrics: SidecarMetrics | None = None) -> Controller:
        """Build the production wiring: manifest source, local directory, http/file fetcher."""
        if settings.manifest_dir is None:
            raise InitializationError(
                "No manifest directory configured; pass --manifest-dir or set FILESIDECAR_MANIFEST_DIR"
            )

        file_store = LocalFileStore(settings.download_path)
        try:
            file_store.ensure_directory()
        except OSError as e:
            raise InitializationError(f"Cannot create download path {settings.download_path}: {e}") from e

        policy = BackoffPolicy(
            initial_delay=settings.backoff.initial_delay,
            max_delay=settings.backoff.max_delay,
            exponential_base=settings.backoff.exponential_base,
        )
        queue = RateLimitingQueue(
            default_controller_rate_limiter(policy, qps=settings.rate_limit.qps, burst=settings.rate_limit.burst),
            metrics=metrics,
        )
        return cls(
            ManifestDirectorySource(
                settings.manifest_dir,
                keys=[settings.key],
                poll_interval=settings.poll_interval,
            ),
            file_store,
            build_default_fetcher(timeout=settings.fetch.timeout, chunk_size=settings.fetch.chunk_size),
            queue=queue,
            workers=settings.workers,
            sync_timeout=settings.sync_timeout,
            shutdown_timeout=settings.shutdown_timeout,
            resync_keys=(settings.key,),
            metrics=metrics,
        )

    async def start(self) -> None:
        """
        Start the source, wait for its initial listing, start the workers.

        Raises:
            InitializationError: If the source cannot start or never syncs
        """
        logger.info("Starting file downloader sidecar controller")
        await self.fetcher.connect()
        try:
            await self.source.start()
            if not await self.source.wait_for_sync(timeout=self.sync_timeout or None):
                await self.source.stop()
                raise InitializationError(f"Timed out after {self.sync_timeout}s waiting for desired state to sync")
        except BaseException:
            await self.fetcher.close()
            raise

        for key in self.resync_keys:
            self.queue.add(key)
        self.dispatcher.start()

    async def stop(self) -> None:
        """Stop the workers (graceful, then cancel), then the source and fetcher."""
        logger.info("Stopping file downloader sidecar controller")
        try:
            await self.dispatcher.shutdown()
        finally:
            await self.source.stop()
            await self.fetcher.close()

    async def run(self, stop: asyncio.Event) -> None:
        """Run until ``stop`` is set."""
        await self.start()
        try:
            await stop.wait()
        finally:
            await self.stop()
