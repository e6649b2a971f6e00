"""Abstract base class for certificate issuers.

An issuer turns a CSR for one host into a signed certificate chain.
The production issuer (:class:`~acmegate.issuer.acme.AcmeowIssuer`)
talks to an ACME CA; tests substitute their own.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from cryptography import x509

    from acmegate.models.entries import AccountKey

log = logging.getLogger(__name__)


class IssuanceError(Exception):
    """Raised when a certificate cannot be obtained for a host.

    Parameters
    ----------
    detail:
        Human-readable description of the failure.
    retryable:
        Whether the failure is transient and the operation may be retried.

    """

    def __init__(self, detail: str, *, retryable: bool = False) -> None:
        self.detail = detail
        self.retryable = retryable
        super().__init__(detail)


@dataclass(frozen=True)
class AccountContext:
    """The ACME account an order is placed under."""

    name: str
    email: str
    key: AccountKey


@dataclass(frozen=True)
class IssuedCertificate:
    """Result of a successful issuance.

    Attributes
    ----------
    pem_chain:
        Full PEM certificate chain (leaf first).
    not_before:
        Certificate validity start time.
    not_after:
        Certificate validity end time.
    serial_number:
        Hex-encoded serial number.
    fingerprint:
        SHA-256 hex digest of the leaf certificate's DER encoding.
    key_pem:
        Private key matching the leaf, filled in by the client.

    """

    pem_chain: str
    not_before: datetime
    not_after: datetime
    serial_number: str
    fingerprint: str
    key_pem: str | None = None

    @property
    def not_after_epoch(self) -> int:
        return int(self.not_after.timestamp())


class Issuer(abc.ABC):
    """Base class for issuer implementations."""

    @abc.abstractmethod
    def issue(
        self,
        host: str,
        csr: x509.CertificateSigningRequest,
        account: AccountContext,
    ) -> IssuedCertificate:
        """Obtain a certificate for *host* signed over *csr*.

        Raises
        ------
        IssuanceError
            On any failure to obtain the certificate.

        """

    def close(self) -> None:  # noqa: B027
        """Release resources.  The default does nothing."""
