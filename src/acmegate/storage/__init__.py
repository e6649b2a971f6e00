"""Flat key/value storage for acmegate.

Public API::

    from acmegate.storage import Storage, create_storage
"""

from acmegate.storage.base import (
    SerializationError,
    Storage,
    StorageError,
    StorageUnavailable,
)
from acmegate.storage.registry import create_storage

__all__ = [
    "SerializationError",
    "Storage",
    "StorageError",
    "StorageUnavailable",
    "create_storage",
]
