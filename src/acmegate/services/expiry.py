"""Renewal and cleanup decisions for one host.

:func:`decide` is pure arithmetic on a ``notAfter`` timestamp.
:func:`check_expire` reads the host's certificate through a
:class:`~acmegate.services.certstore.CertificateStore` (database or
key/value variant, the caller does not care which), parses it and
delegates to :func:`decide`.

Usage::

    check = check_expire(store, "example.com", settings.acme.renew_threshold_seconds)
    if check.clean:
        bookkeeper.untrack("example.com")
    elif check.renew:
        client.order_certificate("example.com", key_pem=check.key)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from cryptography import x509

from acmegate.storage.base import SerializationError

if TYPE_CHECKING:
    from acmegate.services.certstore import CertificateStore

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExpiryDecision:
    renew: bool
    clean: bool


@dataclass(frozen=True)
class ExpiryCheck:
    """Outcome of :func:`check_expire`.

    Attributes
    ----------
    key:
        The stored private key PEM when ``renew`` is true, else ``None``.
    renew:
        The certificate expires within the threshold (or already has).
    clean:
        The certificate is gone while a renewal entry still tracks it.
    not_after:
        Expiry of the stored certificate (epoch seconds), if one exists.

    """

    key: str | None
    renew: bool
    clean: bool
    not_after: int | None = None


def decide(
    not_after: int | None,
    now: int,
    threshold_seconds: int,
    *,
    found: bool = True,
    tracked: bool = True,
) -> ExpiryDecision:
    """Return the renew/clean flags for one certificate.

    Parameters
    ----------
    not_after:
        Certificate expiry in epoch seconds; ignored when *found* is false.
    now:
        Current time in epoch seconds.
    threshold_seconds:
        Renew when at most this many seconds of validity remain.
        The boundary is inclusive.
    found:
        Whether a certificate exists for the host.
    tracked:
        Whether a renewal entry exists for the host.

    """
    if not found or not_after is None:
        return ExpiryDecision(renew=False, clean=tracked)
    return ExpiryDecision(renew=not_after - now <= threshold_seconds, clean=False)


def not_after_epoch(cert_pem: str) -> int:
    """Return the ``notAfter`` of the leaf certificate in *cert_pem*.

    Raises
    ------
    SerializationError
        If *cert_pem* is not a parseable PEM certificate.

    """
    try:
        cert = x509.load_pem_x509_certificate(cert_pem.encode("ascii"))
    except (ValueError, UnicodeEncodeError) as exc:
        msg = f"Stored certificate cannot be parsed: {exc}"
        raise SerializationError(msg) from exc
    return int(cert.not_valid_after_utc.timestamp())


def check_expire(
    store: CertificateStore,
    host: str,
    threshold_seconds: int,
    *,
    now: int | None = None,
    tracked: bool = True,
) -> ExpiryCheck:
    """Decide whether *host* needs renewal or its renewal entry cleanup.

    Raises
    ------
    SerializationError
        If the stored certificate is corrupt.  Corruption is never
        reported as a missing certificate.

    """
    if now is None:
        now = int(time.time())

    certkey = store.load(host)
    if certkey is None:
        decision = decide(None, now, threshold_seconds, found=False, tracked=tracked)
        log.debug("No certificate for %s (tracked=%s)", host, tracked)
        return ExpiryCheck(key=None, renew=False, clean=decision.clean)

    expires = not_after_epoch(certkey.cert)
    decision = decide(expires, now, threshold_seconds, tracked=tracked)
    log.debug(
        "Certificate for %s expires in %ds (threshold %ds): renew=%s",
        host,
        expires - now,
        threshold_seconds,
        decision.renew,
    )
    return ExpiryCheck(
        key=certkey.key if decision.renew else None,
        renew=decision.renew,
        clean=False,
        not_after=expires,
    )
