"""
filesidecar exception hierarchy.

All domain-specific exceptions inherit from SidecarError, making it easy
to catch any sidecar error with a single base class while still allowing
fine-grained handling when needed.

Hierarchy::

    SidecarError
    ├── ConfigurationError        - config loading, parsing, validation
    ├── InitializationError       - startup failures (backend unreachable, sync timeout)
    ├── ReconcileError            - a reconciliation pass failed; drives requeue
    │   ├── ListError             - target directory could not be listed
    │   ├── DeleteError           - one or more deletions failed
    │   ├── DownloadError         - one or more downloads failed
    │   └── SourceUnavailableError - desired state could not be read
    ├── FetchError                - a single source location could not be fetched
    └── InvalidFileNameError      - desired file name escapes the target directory
"""

from __future__ import annotations


class SidecarError(Exception):
    """Base exception for all filesidecar errors."""

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# --- Configuration -----------------------------------------------------------


class ConfigurationError(SidecarError):
    """Raised when configuration loading, parsing, or validation fails."""


# --- Initialization ----------------------------------------------------------


class InitializationError(SidecarError):
    """Raised during startup when a required component fails to initialize.

    Error messages should be informative and actionable; the CLI prints them
    and exits non-zero.
    """


# --- Reconciliation ----------------------------------------------------------


class ReconcileError(SidecarError):
    """Raised when a reconciliation pass for a key did not converge."""

    def __init__(self, key: str, message: str, *, details: dict | None = None) -> None:
        super().__init__(message, details={"key": key, **(details or {})})
        self.key = key


class ListError(ReconcileError):
    """Raised when the target directory cannot be enumerated."""


class SourceUnavailableError(ReconcileError):
    """Raised when the desired state for a key cannot be read."""


class _AggregateFileError(ReconcileError):
    """Aggregate of per-file failures collected during one phase."""

    operation = "process"

    def __init__(self, key: str, failures: dict[str, BaseException]) -> None:
        names = sorted(failures)
        super().__init__(
            key,
            f"Failed to {self.operation} {len(names)} file(s) for {key}: {', '.join(names)}",
            details={"files": names, "causes": {n: str(failures[n]) for n in names}},
        )
        self.failures = dict(failures)


class DeleteError(_AggregateFileError):
    """Raised when at least one file listed for deletion could not be removed."""

    operation = "delete"


class DownloadError(_AggregateFileError):
    """Raised when at least one file listed for download could not be fetched."""

    operation = "download"


# --- Per-file ----------------------------------------------------------------


class FetchError(SidecarError):
    """Raised when a source location cannot be opened or read."""

    def __init__(self, source: str, message: str, *, status: int | None = None) -> None:
        super().__init__(f"Fetch of {source} failed: {message}", details={"source": source, "status": status})
        self.source = source
        self.status = status


class InvalidFileNameError(SidecarError):
    """Raised when a desired file name is not a plain name inside the target directory."""

    def __init__(self, name: str, reason: str) -> None:
        super().__init__(f"Invalid file name {name!r}: {reason}", details={"name": name})
        self.name = name
