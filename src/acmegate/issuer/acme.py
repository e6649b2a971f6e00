"""ACME issuer backed by ACMEOW.

ACMEOW keeps its own account and order state on disk, one directory
per acmegate account under ``acme.state_path``.  Its client is
stateful, so every order is serialised with a lock.

Requires ACMEOW >= 1.1.0 for external CSR support via
``finalize_order(csr=<bytes>)``.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any

from cryptography.hazmat.primitives.serialization import Encoding

from acmegate.issuer.base import AccountContext, IssuanceError, IssuedCertificate, Issuer
from acmegate.issuer.cert_utils import parse_issued_chain
from acmegate.issuer.handlers import load_challenge_handler

if TYPE_CHECKING:
    from cryptography import x509

    from acmegate.config.settings import AcmeSettings
    from acmegate.storage.base import Storage

log = logging.getLogger(__name__)


class AcmeowIssuer(Issuer):
    """Issue certificates from an ACME CA through ACMEOW.

    Parameters
    ----------
    acme:
        The ``acme`` configuration section.
    storage:
        The flat key/value store, handed to the challenge handler.

    """

    def __init__(self, acme: AcmeSettings, storage: Storage) -> None:
        self._acme = acme
        self._storage = storage
        self._clients: dict[str, Any] = {}
        self._handler: Any = None
        self._lock = threading.Lock()

    def _state_dir(self, account: AccountContext) -> Path:
        digest = hashlib.sha256(account.name.encode("utf-8")).hexdigest()[:16]
        return Path(self._acme.state_path) / digest

    def _get_handler(self) -> Any:  # noqa: ANN401
        if self._handler is None:
            self._handler = load_challenge_handler(
                self._acme.challenge_handler,
                self._acme.challenge_handler_config,
                self._storage,
            )
        return self._handler

    def _get_client(self, account: AccountContext) -> Any:  # noqa: ANN401
        """Return the ACMEOW client for *account*, registering on first use."""
        client = self._clients.get(account.name)
        if client is not None:
            return client

        try:
            from acmeow import AcmeClient  # noqa: PLC0415
        except ImportError as exc:
            msg = "ACMEOW is not installed. Install with: pip install acmeow"
            raise IssuanceError(msg) from exc

        state_dir = self._state_dir(account)
        try:
            state_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            msg = f"Failed to create ACME state directory '{state_dir}': {exc}"
            raise IssuanceError(msg) from exc

        client_kwargs: dict[str, Any] = {
            "directory_url": self._acme.api_uri,
            "storage_path": str(state_dir),
        }
        if self._acme.proxy_url:
            client_kwargs["proxy_url"] = self._acme.proxy_url
        if not self._acme.verify_ssl:
            client_kwargs["verify_ssl"] = False

        account_kwargs: dict[str, str] = {"email": account.email}
        if self._acme.eab_kid and self._acme.eab_hmac_key:
            account_kwargs["eab_kid"] = self._acme.eab_kid
            account_kwargs["eab_hmac_key"] = self._acme.eab_hmac_key

        try:
            client = AcmeClient(**client_kwargs)
            client.create_account(**account_kwargs)
        except Exception as exc:  # noqa: BLE001
            msg = f"Failed to register ACME account {account.email}: {exc}"
            raise IssuanceError(msg, retryable=_is_retryable(exc)) from exc

        log.info("Registered ACME account %s with %s", account.email, self._acme.api_uri)
        self._clients[account.name] = client
        return client

    def issue(
        self,
        host: str,
        csr: x509.CertificateSigningRequest,
        account: AccountContext,
    ) -> IssuedCertificate:
        """Run the order, challenge and finalize flow for *host*."""
        csr_der = csr.public_bytes(Encoding.DER)

        with self._lock:
            client = self._get_client(account)
            handler = self._get_handler()
            try:
                cert_pem = self._execute_flow(client, handler, host, csr_der)
            except IssuanceError:
                raise
            except Exception as exc:  # noqa: BLE001
                msg = f"ACME error for {host} ({type(exc).__name__}): {exc}"
                raise IssuanceError(msg, retryable=_is_retryable(exc)) from exc

        return parse_issued_chain(cert_pem)

    def _execute_flow(
        self,
        client: Any,  # noqa: ANN401
        handler: Any,  # noqa: ANN401
        host: str,
        csr_der: bytes,
    ) -> str:
        log.info("Creating ACME order for %s", host)
        client.create_order([host])

        log.info("Completing %s challenge for %s", self._acme.challenge_type, host)
        client.complete_challenges(handler, challenge_type=self._acme.challenge_type)

        log.info("Finalising order for %s", host)
        client.finalize_order(csr=csr_der)

        cert_pem, _ = client.get_certificate()
        log.info("Certificate issued for %s", host)
        return cert_pem


def _is_retryable(exc: Exception) -> bool:
    """Guess whether an ACME error is transient from its type and message."""
    exc_name = type(exc).__name__.lower()
    msg = str(exc).lower()
    return any(
        p in exc_name or p in msg
        for p in ("timeout", "connection", "network", "server", "503", "429")
    )
