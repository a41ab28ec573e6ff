"""Persistence and object-storage access."""

from .base import (
    ConcurrentUpdateError,
    ContentFetcher,
    ContentUnavailableError,
    NotFoundError,
    StorageError,
    Store,
)
from .content import DirectoryContentFetcher, HttpContentFetcher
from .memory import InMemoryStore
from .sql import SqlStore

__all__ = [
    "ConcurrentUpdateError",
    "ContentFetcher",
    "ContentUnavailableError",
    "DirectoryContentFetcher",
    "HttpContentFetcher",
    "InMemoryStore",
    "NotFoundError",
    "SqlStore",
    "StorageError",
    "Store",
]
