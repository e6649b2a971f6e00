"""Abstract base class for flat key/value storage backends.

Every backend (``shm``, ``redis``, ``database``) implements the five
operations of :class:`Storage`.  Callers never branch on the backend;
:func:`acmegate.storage.registry.create_storage` is the only place that
knows which one is in use.

An absent key is not an error: :meth:`Storage.get` returns ``None`` and
:meth:`Storage.delete` is a no-op.  Errors are reserved for an
unreachable backend (:class:`StorageUnavailable`) and for values that
cannot be decoded (:class:`SerializationError`).
"""

from __future__ import annotations

import abc


class StorageError(Exception):
    """Base class for storage failures.

    Parameters
    ----------
    detail:
        Human-readable description of the failure.

    """

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)


class StorageUnavailable(StorageError):  # noqa: N818
    """The backend could not be reached."""


class SerializationError(StorageError):
    """A stored value is corrupt or cannot be parsed."""


class Storage(abc.ABC):
    """Flat key/value store with TTLs and an atomic insert-if-absent."""

    @abc.abstractmethod
    def get(self, key: str) -> str | None:
        """Return the value stored at *key*, or ``None`` if absent."""

    @abc.abstractmethod
    def set(self, key: str, value: str, ttl: float | None = None) -> None:
        """Store *value* at *key*, replacing any existing value.

        A *ttl* of ``None`` or ``0`` stores the value without expiry.
        """

    @abc.abstractmethod
    def add(self, key: str, value: str, ttl: float | None = None) -> bool:
        """Store *value* only if *key* is absent.

        Returns
        -------
        bool
            ``True`` if the value was stored, ``False`` if the key
            already held a live value.

        """

    @abc.abstractmethod
    def delete(self, key: str) -> None:
        """Remove *key*; deleting an absent key is not an error."""

    @abc.abstractmethod
    def list(self, prefix: str) -> list[str]:
        """Return every live key beginning with *prefix*, sorted."""

    def purge_expired(self) -> int:
        """Delete expired keys; returns the count.

        Backends that expire keys on their own return ``0``.
        """
        return 0

    def close(self) -> None:  # noqa: B027
        """Release backend resources.  The default does nothing."""
