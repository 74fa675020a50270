"""
filesidecar - keep a local directory in sync with a declared set of files.

A desired-state source maps file names to source locations; the controller
downloads what is missing, deletes what is no longer wanted, and retries
failed passes with backoff until the directory converges.
"""

__version__ = "0.1.0"

from filesidecar.config.settings import SidecarSettings
from filesidecar.controller import Controller
from filesidecar.core import (
    Diff,
    Dispatcher,
    RateLimitingQueue,
    ReconcileResult,
    Reconciler,
    compute_diff,
)
from filesidecar.exceptions import (
    ConfigurationError,
    DeleteError,
    DownloadError,
    FetchError,
    InitializationError,
    InvalidFileNameError,
    ListError,
    ReconcileError,
    SidecarError,
    SourceUnavailableError,
)
from filesidecar.fetch import Fetcher, FileFetcher, HttpFetcher, SchemeFetcher, build_default_fetcher
from filesidecar.sources import DesiredStateSource, InMemorySource, ManifestDirectorySource
from filesidecar.storage import FileStore, LocalFileStore
from filesidecar.utils.logging import get_logger, setup_logging, setup_logging_from_config

__all__ = [
    "__version__",
    # Wiring
    "Controller",
    "SidecarSettings",
    # Engine
    "Reconciler",
    "ReconcileResult",
    "Diff",
    "compute_diff",
    "RateLimitingQueue",
    "Dispatcher",
    # Collaborators
    "DesiredStateSource",
    "InMemorySource",
    "ManifestDirectorySource",
    "FileStore",
    "LocalFileStore",
    "Fetcher",
    "FileFetcher",
    "HttpFetcher",
    "SchemeFetcher",
    "build_default_fetcher",
    # Exceptions
    "SidecarError",
    "ConfigurationError",
    "InitializationError",
    "ReconcileError",
    "ListError",
    "DeleteError",
    "DownloadError",
    "SourceUnavailableError",
    "FetchError",
    "InvalidFileNameError",
    # Logging
    "get_logger",
    "setup_logging",
    "setup_logging_from_config",
]
