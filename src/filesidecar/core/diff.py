"""
Desired/actual diff.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping


@dataclass(frozen=True)
class Diff:
    """
    Work needed to make the directory match the desired state.

    Only presence is compared: a name both desired and present is left alone
    even if its source location changed since it was downloaded.
    """

    to_download: dict[str, str] = field(default_factory=dict)
    to_delete: list[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.to_download and not self.to_delete


def compute_diff(desired: Mapping[str, str], actual: Iterable[str]) -> Diff:
    """
    Compare desired names against the names present on disk.

    Args:
        desired: file name -> source location
        actual: names currently present (temporary files already excluded)

    Returns:
        Diff with downloads in sorted name order and deletions sorted
    """
    present = set(actual)
    to_download = {name: desired[name] for name in sorted(desired) if name not in present}
    to_delete = sorted(name for name in present if name not in desired)
    return Diff(to_download=to_download, to_delete=to_delete)
