"""
Target directory storage.
"""

from filesidecar.storage.filestore import TEMP_SUFFIX, AtomicWriter, FileStore, LocalFileStore

__all__ = [
    "TEMP_SUFFIX",
    "AtomicWriter",
    "FileStore",
    "LocalFileStore",
]
