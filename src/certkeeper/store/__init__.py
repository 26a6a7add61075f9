"""Pluggable object store.

Exports the abstract base class, the error hierarchy, the conflict-retry
helper and the registry loader.
"""

from certkeeper.store.base import (
    ConflictError,
    NotFoundError,
    ObjectStore,
    StoreError,
    retry_on_conflict,
)
from certkeeper.store.registry import load_store

__all__ = [
    "ConflictError",
    "NotFoundError",
    "ObjectStore",
    "StoreError",
    "load_store",
    "retry_on_conflict",
]
