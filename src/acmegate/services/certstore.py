"""Certificate persistence for both storage modes.

:class:`DaoCertificateStore` keeps certificates and SNIs as database
rows.  :class:`KeyValueCertificateStore` keeps one JSON certificate/key
pair per host in the flat store (DB-less mode).  Both satisfy
:class:`CertificateStore`, so the expiry evaluator and the renewal
orchestrator never know which one they talk to.

Replacing a certificate in database mode is two-phase:

1. insert the new certificate and create or repoint the SNI, in one
   transaction;
2. after that transaction commits, delete the old certificate if no
   SNI references it anymore.

A crash between the two phases leaves an unreferenced certificate
behind.  That row is harmless and :meth:`DaoCertificateStore.sweep_orphans`
removes it on a later cycle.
"""

from __future__ import annotations

import abc
import logging
from typing import TYPE_CHECKING
from uuid import uuid4

import psycopg

from acmegate.core import keys
from acmegate.core.types import MANAGED_TAG
from acmegate.db.unit_of_work import UnitOfWork
from acmegate.logging import events
from acmegate.models.entries import CertKey
from acmegate.storage import codec
from acmegate.storage.base import StorageError, StorageUnavailable

if TYPE_CHECKING:
    from pypgkit import Database

    from acmegate.repositories.certificate import CertificateRepository
    from acmegate.repositories.sni import SniRepository
    from acmegate.storage.base import Storage

log = logging.getLogger(__name__)


class CertificateStore(abc.ABC):
    """Where a host's certificate and private key live."""

    @abc.abstractmethod
    def save(self, host: str, key_pem: str, cert_pem: str) -> None:
        """Persist *cert_pem*/*key_pem* as the certificate served for *host*."""

    @abc.abstractmethod
    def load(self, host: str) -> CertKey | None:
        """Return the certificate served for *host*, or ``None``."""

    @abc.abstractmethod
    def hosts(self) -> list[str]:
        """Return the hosts whose certificates acmegate manages."""

    @abc.abstractmethod
    def delete(self, host: str) -> None:
        """Stop serving a certificate for *host*."""

    def sweep_orphans(self) -> int:
        """Delete certificates left unreferenced; returns the count."""
        return 0


def _db_error(action: str, exc: psycopg.Error) -> StorageError:
    msg = f"Database error while {action}: {exc}"
    if isinstance(exc, psycopg.OperationalError):
        return StorageUnavailable(msg)
    return StorageError(msg)


# ---------------------------------------------------------------------------
# Database mode
# ---------------------------------------------------------------------------


class DaoCertificateStore(CertificateStore):
    """Certificates and SNIs stored as ``certificates`` / ``snis`` rows."""

    def __init__(
        self,
        db: Database,
        certificates: CertificateRepository,
        snis: SniRepository,
    ) -> None:
        self._db = db
        self._certificates = certificates
        self._snis = snis

    def save(self, host: str, key_pem: str, cert_pem: str) -> None:
        """Insert a new certificate and bind *host* to it.

        The previous certificate, if any, is deleted only after the new
        binding has committed.  A failure at that point is logged and
        the orphan is left for :meth:`sweep_orphans`.

        Raises
        ------
        StorageError
            If the insert or the repoint fails; nothing is committed.

        """
        new_id = uuid4()
        old_id = None
        try:
            with UnitOfWork(self._db) as uow:
                uow.insert(
                    "certificates",
                    {
                        "id": new_id,
                        "cert": cert_pem,
                        "key": key_pem,
                        "tags": [MANAGED_TAG],
                    },
                )
                sni = uow.fetch_one(
                    "SELECT * FROM snis WHERE name = %s FOR UPDATE",
                    (host,),
                )
                if sni is None:
                    uow.insert(
                        "snis",
                        {
                            "id": uuid4(),
                            "name": host,
                            "certificate_id": new_id,
                            "tags": [MANAGED_TAG],
                        },
                    )
                else:
                    old_id = sni["certificate_id"]
                    uow.update_where(
                        "snis",
                        set_values={"certificate_id": new_id},
                        where={"id": sni["id"]},
                    )
        except psycopg.Error as exc:
            raise _db_error(f"saving certificate for {host}", exc) from exc

        log.info("Certificate %s bound to %s", new_id, host)
        events.certificate_saved(host, new_id, replaced_id=old_id)

        if old_id is not None and old_id != new_id:
            self._delete_unreferenced(old_id, reason="replaced")

    def _delete_unreferenced(self, certificate_id, *, reason: str) -> bool:
        try:
            deleted = self._certificates.delete_if_unreferenced(certificate_id)
        except psycopg.Error as exc:
            log.warning(
                "Could not delete certificate %s (%s); it will be swept later: %s",
                certificate_id,
                reason,
                exc,
            )
            return False
        if deleted:
            events.certificate_deleted(certificate_id, reason)
        else:
            log.debug("Certificate %s still referenced, kept", certificate_id)
        return deleted

    def load(self, host: str) -> CertKey | None:
        try:
            sni = self._snis.find_by_name(host)
            if sni is None:
                return None
            record = self._certificates.find_by_id(sni.certificate_id)
        except psycopg.Error as exc:
            raise _db_error(f"loading certificate for {host}", exc) from exc
        if record is None:
            return None
        return CertKey(cert=record.cert, key=record.key)

    def hosts(self) -> list[str]:
        try:
            return [sni.name for sni in self._snis.find_managed()]
        except psycopg.Error as exc:
            raise _db_error("listing managed hosts", exc) from exc

    def delete(self, host: str) -> None:
        """Remove the SNI for *host* and its certificate if now unreferenced."""
        try:
            with UnitOfWork(self._db) as uow:
                sni = uow.fetch_one(
                    "SELECT * FROM snis WHERE name = %s FOR UPDATE",
                    (host,),
                )
                if sni is None:
                    return
                uow.delete_where("snis", {"id": sni["id"]})
        except psycopg.Error as exc:
            raise _db_error(f"deleting SNI {host}", exc) from exc
        self._delete_unreferenced(sni["certificate_id"], reason="sni deleted")

    def sweep_orphans(self) -> int:
        """Delete managed certificates that no SNI references.

        Returns the number of certificates deleted.
        """
        try:
            orphans = self._certificates.find_unreferenced()
        except psycopg.Error as exc:
            raise _db_error("listing unreferenced certificates", exc) from exc
        count = 0
        for record in orphans:
            if self._delete_unreferenced(record.id, reason="orphaned"):
                count += 1
        if count:
            log.info("Swept %d orphaned certificate(s)", count)
        return count


# ---------------------------------------------------------------------------
# DB-less mode
# ---------------------------------------------------------------------------


class KeyValueCertificateStore(CertificateStore):
    """One JSON ``{cert, key}`` value per host under the cert-key prefix.

    A single ``set`` replaces the previous pair, so there is never an
    orphan to clean up.
    """

    def __init__(self, storage: Storage) -> None:
        self._storage = storage

    def save(self, host: str, key_pem: str, cert_pem: str) -> None:
        self._storage.set(
            keys.certkey_key(host),
            codec.encode_certkey(CertKey(cert=cert_pem, key=key_pem)),
        )
        log.info("Certificate stored for %s", host)
        events.certificate_saved(host, None)

    def load(self, host: str) -> CertKey | None:
        raw = self._storage.get(keys.certkey_key(host))
        if raw is None:
            return None
        return codec.decode_certkey(raw)

    def hosts(self) -> list[str]:
        return [
            keys.host_from_key(k, keys.CERTKEY_KEY_PREFIX)
            for k in self._storage.list(keys.CERTKEY_KEY_PREFIX)
        ]

    def delete(self, host: str) -> None:
        self._storage.delete(keys.certkey_key(host))


def load_certkey(store: CertificateStore, host: str) -> CertKey | None:
    """Return the certificate/key pair the gateway should serve for *host*.

    Hostnames are matched case-insensitively; a miss on the exact name
    falls back to the ``*.parent`` wildcard entry.
    """
    host = host.lower().rstrip(".")
    certkey = store.load(host)
    if certkey is not None:
        return certkey
    _, _, parent = host.partition(".")
    if parent and "." in parent:
        return store.load(f"*.{parent}")
    return None
