"""Database storage backend on the ``acme_storage`` table."""

from __future__ import annotations

from typing import TYPE_CHECKING

import psycopg

from acmegate.storage.base import Storage, StorageUnavailable

if TYPE_CHECKING:
    from acmegate.repositories.kv import KeyValueRepository


class DatabaseStorage(Storage):
    """Flat key/value store kept in PostgreSQL.

    Connection failures surface as :class:`StorageUnavailable`.
    """

    def __init__(self, repo: KeyValueRepository) -> None:
        self._repo = repo

    def get(self, key: str) -> str | None:
        try:
            return self._repo.get(key)
        except psycopg.OperationalError as exc:
            raise StorageUnavailable(f"Database read of {key} failed: {exc}") from exc

    def set(self, key: str, value: str, ttl: float | None = None) -> None:
        try:
            self._repo.put(key, value, ttl)
        except psycopg.OperationalError as exc:
            raise StorageUnavailable(f"Database write of {key} failed: {exc}") from exc

    def add(self, key: str, value: str, ttl: float | None = None) -> bool:
        try:
            return self._repo.put_if_absent(key, value, ttl)
        except psycopg.OperationalError as exc:
            raise StorageUnavailable(f"Database insert of {key} failed: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self._repo.delete_key(key)
        except psycopg.OperationalError as exc:
            raise StorageUnavailable(f"Database delete of {key} failed: {exc}") from exc

    def list(self, prefix: str) -> list[str]:
        try:
            return self._repo.keys_with_prefix(prefix)
        except psycopg.OperationalError as exc:
            raise StorageUnavailable(f"Database scan of {prefix}* failed: {exc}") from exc

    def purge_expired(self) -> int:
        """Delete expired rows from ``acme_storage``."""
        try:
            return self._repo.purge_expired()
        except psycopg.OperationalError as exc:
            raise StorageUnavailable(f"Database purge failed: {exc}") from exc
