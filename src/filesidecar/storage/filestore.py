"""
Target directory access.

Files are written under ``<name>.part`` and renamed into place on commit, so a
final name only ever points at a complete file. Listings skip ``.part`` names,
which makes a temporary file left behind by a crash invisible to the diff;
the next download of that name overwrites it.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Protocol

from filesidecar.exceptions import InvalidFileNameError
from filesidecar.utils.logging import get_logger

logger = get_logger("filesidecar.storage")

TEMP_SUFFIX = ".part"


class AtomicWriter:
    """
    Writable handle whose content becomes visible under the final name only on commit.

    Use as a context manager; leaving the block without ``commit()`` discards
    the temporary file::

        with store.create_atomic("plugin.jar") as writer:
            writer.write(b"...")
            writer.commit()
    """

    def __init__(self, final_path: Path):
        self.final_path = final_path
        self.temp_path = final_path.with_name(final_path.name + TEMP_SUFFIX)
        self.bytes_written = 0
        self._committed = False
        self._file = open(self.temp_path, "wb")

    def write(self, data: bytes) -> int:
        written = self._file.write(data)
        self.bytes_written += written
        return written

    def commit(self) -> None:
        """Flush, close and rename the temporary file to the final name."""
        self._file.flush()
        os.fsync(self._file.fileno())
        self._file.close()
        os.replace(self.temp_path, self.final_path)
        self._committed = True

    def abort(self) -> None:
        """Close and remove the temporary file, best-effort."""
        if self._committed:
            return
        if not self._file.closed:
            self._file.close()
        try:
            self.temp_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove temporary file {self.temp_path}: {e}")

    @property
    def committed(self) -> bool:
        return self._committed

    def __enter__(self) -> AtomicWriter:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self._committed:
            self.abort()


class FileStore(Protocol):
    """Operations the reconciler needs on its target directory."""

    def list(self) -> list[str]:
        """Names present in the directory, excluding temporary files."""
        ...

    def create_atomic(self, name: str) -> AtomicWriter:
        """Open ``name`` for writing with commit-on-rename semantics."""
        ...

    def delete(self, name: str) -> bool:
        """Remove ``name``. Returns False if it was already gone."""
        ...


class LocalFileStore:
    """
    FileStore over a local directory owned exclusively by this process.

    Args:
        directory: Target directory; created by ``ensure_directory``
    """

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def ensure_directory(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)

    def list(self) -> list[str]:
        """
        List regular entries of the directory, sorted.

        Subdirectories are not managed and are left out, as are ``.part`` files.

        Raises:
            OSError: If the directory cannot be read
        """
        names = []
        with os.scandir(self.directory) as entries:
            for entry in entries:
                if entry.name.endswith(TEMP_SUFFIX):
                    continue
                if entry.is_dir(follow_symlinks=False):
                    continue
                names.append(entry.name)
        return sorted(names)

    def create_atomic(self, name: str) -> AtomicWriter:
        return AtomicWriter(self._path(name))

    def delete(self, name: str) -> bool:
        try:
            os.remove(self._path(name))
        except FileNotFoundError:
            logger.debug(f"{name} already gone from {self.directory}")
            return False
        return True

    def _path(self, name: str) -> Path:
        """Resolve ``name`` inside the directory, rejecting anything that is not a plain file name."""
        if not name or name in (".", ".."):
            raise InvalidFileNameError(name, "empty or relative reference")
        if "/" in name or (os.altsep and os.altsep in name) or os.sep in name:
            raise InvalidFileNameError(name, "contains a path separator")
        if "\x00" in name:
            raise InvalidFileNameError(name, "contains a NUL byte")
        if name.endswith(TEMP_SUFFIX):
            raise InvalidFileNameError(name, f"uses the reserved {TEMP_SUFFIX} suffix")
        return self.directory / name

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(directory='{self.directory}')"
