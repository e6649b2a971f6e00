"""Renewal bookkeeping in the flat key/value store.

A :class:`~acmegate.models.RenewConfig` entry marks a host whose
renewal is pending; it is deleted once the renewal succeeds.  An entry
whose certificate has disappeared (deleted out-of-band, or never
persisted) is stale; :meth:`RenewalBookkeeper.reconcile` removes it.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from acmegate.core import keys
from acmegate.logging import events
from acmegate.models.entries import RenewConfig
from acmegate.services.expiry import check_expire
from acmegate.storage import codec
from acmegate.storage.base import SerializationError

if TYPE_CHECKING:
    from acmegate.metrics.collector import MetricsCollector
    from acmegate.services.certstore import CertificateStore
    from acmegate.storage.base import Storage

log = logging.getLogger(__name__)


class RenewalBookkeeper:
    """Track, untrack and reconcile renewal entries.

    Parameters
    ----------
    storage:
        The flat key/value store holding the entries.
    certstore:
        Where the tracked certificates live.
    threshold_seconds:
        Renewal threshold, forwarded to the expiry evaluator.
    ttl_seconds:
        Optional TTL applied to every entry; ``0`` keeps them forever.

    """

    def __init__(
        self,
        storage: Storage,
        certstore: CertificateStore,
        threshold_seconds: int,
        *,
        ttl_seconds: int = 0,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._storage = storage
        self._certstore = certstore
        self._threshold = threshold_seconds
        self._ttl = ttl_seconds or None
        self._metrics = metrics

    def track(self, host: str, not_after: int) -> None:
        """Record that *host*'s certificate expires at *not_after*.

        Overwrites any previous entry for *host*.
        """
        entry = RenewConfig(host=host, expire_at=int(not_after))
        self._storage.set(
            keys.renew_config_key(host),
            codec.encode_renew_config(entry),
            ttl=self._ttl,
        )
        log.debug("Tracking %s (expires at %d)", host, entry.expire_at)

    def untrack(self, host: str) -> None:
        """Delete the entry for *host*; a missing entry is not an error."""
        self._storage.delete(keys.renew_config_key(host))

    def is_tracked(self, host: str) -> bool:
        return self._storage.get(keys.renew_config_key(host)) is not None

    def hosts(self) -> list[str]:
        """Return the hosts with an entry, without decoding the values."""
        return [
            keys.host_from_key(k, keys.RENEW_KEY_PREFIX)
            for k in self._storage.list(keys.RENEW_KEY_PREFIX)
        ]

    def entries(self) -> list[RenewConfig]:
        """Decode every entry.

        An entry that vanishes between listing and reading is skipped.

        Raises
        ------
        SerializationError
            If an entry is corrupt.

        """
        result = []
        for key in self._storage.list(keys.RENEW_KEY_PREFIX):
            raw = self._storage.get(key)
            if raw is None:
                continue
            result.append(codec.decode_renew_config(raw))
        return result

    def reconcile(self, *, now: int | None = None) -> list[str]:
        """Delete every entry whose certificate no longer exists.

        Entries whose certificate still exists are kept, whatever its
        expiry.  Each entry is handled on its own: a corrupt one is
        logged and skipped so the others are still reconciled.  Running
        this twice with no writes in between deletes nothing the second
        time.

        Returns
        -------
        list[str]
            Hosts whose entries were deleted.

        Raises
        ------
        SerializationError
            After the pass, if any entry (or the certificate it refers
            to) could not be decoded; the message names every such key.

        """
        if now is None:
            now = int(time.time())
        cleaned = []
        corrupt = []
        for key in self._storage.list(keys.RENEW_KEY_PREFIX):
            host = keys.host_from_key(key, keys.RENEW_KEY_PREFIX)
            try:
                if not self._is_stale(key, host, now):
                    continue
            except SerializationError as exc:
                log.error("Skipping corrupt renewal entry %s: %s", key, exc)
                corrupt.append(key)
                continue
            self._storage.delete(key)
            cleaned.append(host)
            events.renew_config_cleaned(host)
            if self._metrics:
                self._metrics.increment("acmegate_renew_configs_cleaned_total")
        if cleaned:
            log.info("Removed %d stale renewal entries: %s", len(cleaned), ", ".join(cleaned))
        if corrupt:
            msg = f"Corrupt renewal entries left in place: {', '.join(corrupt)}"
            raise SerializationError(msg)
        return cleaned

    def _is_stale(self, key: str, host: str, now: int) -> bool:
        raw = self._storage.get(key)
        if raw is None:
            return False
        codec.decode_renew_config(raw)
        check = check_expire(self._certstore, host, self._threshold, now=now, tracked=True)
        return check.clean
