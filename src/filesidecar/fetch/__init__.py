"""
Fetchers: stream the bytes behind a source location.
"""

from filesidecar.fetch.base import Fetcher
from filesidecar.fetch.http import HttpFetcher
from filesidecar.fetch.local import FileFetcher
from filesidecar.fetch.router import SchemeFetcher, build_default_fetcher

__all__ = [
    "Fetcher",
    "HttpFetcher",
    "FileFetcher",
    "SchemeFetcher",
    "build_default_fetcher",
]
