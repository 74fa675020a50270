"""
Desired-state sources: where the name -> source mapping comes from.
"""

from filesidecar.sources.base import ChangeHandler, DesiredState, DesiredStateSource
from filesidecar.sources.manifest import ManifestDirectorySource, split_key
from filesidecar.sources.memory import InMemorySource

__all__ = [
    "ChangeHandler",
    "DesiredState",
    "DesiredStateSource",
    "InMemorySource",
    "ManifestDirectorySource",
    "split_key",
]
