"""In-process shared memory storage.

Zones are identified by name: every :class:`ShmStorage` constructed
with the same ``shm_name`` inside one process sees the same data, the
way gateway workers share one ``lua_shared_dict``.  Nothing survives a
restart.
"""

from __future__ import annotations

import threading
import time

from acmegate.storage.base import Storage

# name -> {key: (value, expires_at or None)}
_zones: dict[str, dict[str, tuple[str, float | None]]] = {}
_zones_lock = threading.Lock()


def _zone(name: str) -> dict[str, tuple[str, float | None]]:
    with _zones_lock:
        return _zones.setdefault(name, {})


def reset_zones() -> None:
    """Drop every zone -- testing only."""
    with _zones_lock:
        _zones.clear()


class ShmStorage(Storage):
    """Thread-safe dict with per-key expiry, shared by zone name."""

    _lock = threading.RLock()

    def __init__(self, shm_name: str = "acmegate") -> None:
        self._name = shm_name
        self._data = _zone(shm_name)

    @staticmethod
    def _deadline(ttl: float | None) -> float | None:
        return time.monotonic() + ttl if ttl else None

    def _live(self, key: str) -> str | None:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and expires_at <= time.monotonic():
            del self._data[key]
            return None
        return value

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._live(key)

    def set(self, key: str, value: str, ttl: float | None = None) -> None:
        with self._lock:
            self._data[key] = (value, self._deadline(ttl))

    def add(self, key: str, value: str, ttl: float | None = None) -> bool:
        with self._lock:
            if self._live(key) is not None:
                return False
            self._data[key] = (value, self._deadline(ttl))
            return True

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def list(self, prefix: str) -> list[str]:
        with self._lock:
            return sorted(
                k for k in list(self._data) if k.startswith(prefix) and self._live(k) is not None
            )

    def __repr__(self) -> str:
        return f"<ShmStorage shm_name={self._name}>"
