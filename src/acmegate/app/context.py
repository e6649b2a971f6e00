"""Dependency injection container for acmegate.

Created once by the embedding gateway at startup.  Builds the database
(when configured), the flat store, the certificate store for the active
mode, and everything the renewal cycle needs on top of them.

Usage::

    from acmegate.app import Container
    from acmegate.config import AcmegateConfig

    cfg = AcmegateConfig(config_file="/etc/acmegate/config.yaml")
    c = Container(cfg.settings)
    c.start()
    ...
    certkey = c.load_certkey("example.com")   # certificate phase
    c.stop()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from acmegate.client import AccountKeyCache, AcmeClient, create_account
from acmegate.issuer.acme import AcmeowIssuer
from acmegate.issuer.handlers import lookup_challenge
from acmegate.logging import configure_logging
from acmegate.metrics.collector import MetricsCollector
from acmegate.services.bookkeeper import RenewalBookkeeper
from acmegate.services.certstore import (
    CertificateStore,
    DaoCertificateStore,
    KeyValueCertificateStore,
    load_certkey,
)
from acmegate.services.renewal import RenewalOrchestrator, RenewalWorker
from acmegate.storage.registry import create_storage

if TYPE_CHECKING:
    from pypgkit import Database

    from acmegate.config.settings import AcmegateSettings
    from acmegate.issuer.base import Issuer
    from acmegate.models.entries import CertKey
    from acmegate.storage.base import Storage

log = logging.getLogger(__name__)


class Container:
    """Application-wide dependency container.

    Parameters
    ----------
    settings:
        The full settings tree.
    db:
        An initialised database; built from ``settings.database`` when
        omitted and a database section is configured.
    storage:
        A pre-built flat store, used instead of ``storage.kind``.
    issuer:
        A pre-built issuer, used instead of :class:`AcmeowIssuer`.

    """

    def __init__(
        self,
        settings: AcmegateSettings,
        *,
        db: Database | None = None,
        storage: Storage | None = None,
        issuer: Issuer | None = None,
        setup_logging: bool = True,
    ) -> None:
        self.settings = settings
        if setup_logging:
            configure_logging(settings.logging)

        if db is None and settings.database is not None:
            from acmegate.db.init import init_database  # noqa: PLC0415

            db = init_database(settings.database)
        self.db: Database | None = db

        self.metrics = MetricsCollector()
        self.storage: Storage = storage or create_storage(settings, db=db)
        self.certstore: CertificateStore = self._build_certstore()
        self.bookkeeper = RenewalBookkeeper(
            self.storage,
            self.certstore,
            settings.acme.renew_threshold_seconds,
            ttl_seconds=settings.renewal.renew_config_ttl_days * 86400,
            metrics=self.metrics,
        )
        self.accounts = AccountKeyCache()
        self.issuer: Issuer = issuer or AcmeowIssuer(settings.acme, self.storage)
        self.orchestrator = RenewalOrchestrator(
            settings,
            self.storage,
            self.certstore,
            self.bookkeeper,
            self.new_client,
            metrics=self.metrics,
        )
        self.worker = RenewalWorker(self.orchestrator, settings.renewal, metrics=self.metrics)

        log.info(
            "acmegate container ready (mode=%s, storage=%s)",
            "dbless" if self.db is None else "database",
            settings.storage.kind,
        )

    def _build_certstore(self) -> CertificateStore:
        if self.db is None:
            return KeyValueCertificateStore(self.storage)

        from acmegate.repositories import (  # noqa: PLC0415
            CertificateRepository,
            SniRepository,
        )

        return DaoCertificateStore(
            self.db,
            CertificateRepository(self.db),
            SniRepository(self.db),
        )

    # -- collaborators ---------------------------------------------------------

    def new_client(self) -> AcmeClient:
        """Build an ACME client for the configured account."""
        return AcmeClient.new(self.settings.acme, self.storage, self.accounts, self.issuer)

    def load_certkey(self, host: str) -> CertKey | None:
        """Certificate to serve for *host* during the TLS handshake."""
        return load_certkey(self.certstore, host)

    def lookup_challenge(self, token: str) -> str | None:
        """Key authorization to answer an HTTP-01 request for *token*."""
        return lookup_challenge(self.storage, token)

    # -- lifecycle -------------------------------------------------------------

    def start(self) -> None:
        """Provision the account key and start the renewal worker."""
        create_account(self.settings.acme, self.storage)
        self.worker.start()

    def stop(self) -> None:
        self.worker.stop()
        self.issuer.close()
        self.storage.close()
