"""Redis storage backend.

Keys are stored as plain strings, optionally under a namespace so that
several gateways can share one Redis database.  ``add`` maps to
``SET NX EX`` and ``list`` walks the keyspace with ``SCAN MATCH``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import redis

from acmegate.storage.base import Storage, StorageUnavailable

if TYPE_CHECKING:
    from acmegate.config.settings import RedisSettings

log = logging.getLogger(__name__)

_GLOB_SPECIALS = "\\*?[]"


def _escape_glob(value: str) -> str:
    return "".join(f"\\{c}" if c in _GLOB_SPECIALS else c for c in value)


class RedisStorage(Storage):
    """Flat key/value store on a Redis server.

    Parameters
    ----------
    settings:
        The ``storage.redis`` section.
    client:
        Pre-built client, used instead of connecting to ``settings.url``.

    """

    def __init__(
        self,
        settings: RedisSettings,
        client: redis.Redis | None = None,
    ) -> None:
        self._namespace = f"{settings.namespace}:" if settings.namespace else ""
        if client is None:
            if not settings.url:
                msg = "storage.redis.url is required for the redis storage kind"
                raise StorageUnavailable(msg)
            client = redis.Redis.from_url(
                settings.url,
                decode_responses=True,
                socket_timeout=settings.socket_timeout,
                socket_connect_timeout=settings.socket_timeout,
            )
        self._client = client

    def _k(self, key: str) -> str:
        return self._namespace + key

    @staticmethod
    def _ttl_ms(ttl: float | None) -> int | None:
        return max(1, int(ttl * 1000)) if ttl else None

    def get(self, key: str) -> str | None:
        try:
            value = self._client.get(self._k(key))
        except redis.RedisError as exc:
            raise StorageUnavailable(f"Redis GET {key} failed: {exc}") from exc
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    def set(self, key: str, value: str, ttl: float | None = None) -> None:
        try:
            self._client.set(self._k(key), value, px=self._ttl_ms(ttl))
        except redis.RedisError as exc:
            raise StorageUnavailable(f"Redis SET {key} failed: {exc}") from exc

    def add(self, key: str, value: str, ttl: float | None = None) -> bool:
        try:
            stored = self._client.set(self._k(key), value, nx=True, px=self._ttl_ms(ttl))
        except redis.RedisError as exc:
            raise StorageUnavailable(f"Redis SET NX {key} failed: {exc}") from exc
        return bool(stored)

    def delete(self, key: str) -> None:
        try:
            self._client.delete(self._k(key))
        except redis.RedisError as exc:
            raise StorageUnavailable(f"Redis DEL {key} failed: {exc}") from exc

    def list(self, prefix: str) -> list[str]:
        pattern = _escape_glob(self._k(prefix)) + "*"
        strip = len(self._namespace)
        try:
            keys = self._client.scan_iter(match=pattern, count=500)
            result = set()
            for k in keys:
                if isinstance(k, bytes):
                    k = k.decode("utf-8")  # noqa: PLW2901
                result.add(k[strip:])
        except redis.RedisError as exc:
            raise StorageUnavailable(f"Redis SCAN {prefix}* failed: {exc}") from exc
        return sorted(result)

    def close(self) -> None:
        try:
            self._client.close()
        except redis.RedisError:
            log.debug("Error closing Redis client", exc_info=True)

    def __repr__(self) -> str:
        return f"<RedisStorage namespace={self._namespace or '-'}>"
