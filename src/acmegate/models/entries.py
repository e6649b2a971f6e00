"""Values kept in the flat key/value store.

These are not database rows: each one is serialised to JSON by
:mod:`acmegate.storage.codec` and stored under a prefixed key from
:mod:`acmegate.core.keys`.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RenewConfig:
    """A host whose certificate is tracked for renewal.

    ``expire_at`` is the certificate's ``notAfter`` in epoch seconds.
    """

    host: str
    expire_at: int


@dataclass(frozen=True)
class CertKey:
    """A PEM certificate chain and its private key."""

    cert: str
    key: str


@dataclass(frozen=True)
class AccountKey:
    """ACME account private key and, once registered, its key id URL."""

    key: str
    kid: str | None = None
