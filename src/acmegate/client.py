"""ACME client bound to one stored account.

The account key lives in the flat store under :func:`account_name`.
:func:`create_account` provisions it once; :meth:`AcmeClient.new`
refuses to build a client when it is missing, so a misconfigured email
is reported up front instead of surfacing as a failed order later.

Usage::

    create_account(settings.acme, storage)
    client = AcmeClient.new(settings.acme, storage, accounts, issuer)
    issued = client.order_certificate("example.com")
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from typing import TYPE_CHECKING

from acmegate.core import keys
from acmegate.issuer.base import AccountContext, IssuanceError
from acmegate.issuer.cert_utils import (
    build_csr,
    generate_private_key,
    load_private_key,
    private_key_to_pem,
)
from acmegate.logging import events
from acmegate.models.entries import AccountKey
from acmegate.storage import codec

if TYPE_CHECKING:
    from collections.abc import Callable

    from acmegate.config.settings import AcmeSettings
    from acmegate.issuer.base import IssuedCertificate, Issuer
    from acmegate.storage.base import Storage

log = logging.getLogger(__name__)


def account_name(acme: AcmeSettings) -> str:
    """Return the storage key of the account configured in *acme*."""
    return keys.account_name(acme)


class ConfigurationError(Exception):
    """The configuration refers to something that does not exist."""


class AccountNotFoundError(ConfigurationError):
    """No account key is stored for the configured email."""

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(f"account {email} not found in storage")


# ---------------------------------------------------------------------------
# Account key cache
# ---------------------------------------------------------------------------


class AccountKeyCache:
    """Process-wide cache of account keys, keyed by account name.

    Two threads missing the cache at once both run the loader; the
    second result overwrites the first, which is harmless because both
    read the same stored key.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._keys: dict[str, AccountKey] = {}

    def get(
        self,
        name: str,
        loader: Callable[[], AccountKey | None],
    ) -> AccountKey | None:
        with self._lock:
            cached = self._keys.get(name)
        if cached is not None:
            return cached
        loaded = loader()
        if loaded is not None:
            with self._lock:
                self._keys[name] = loaded
        return loaded

    def invalidate(self, name: str) -> None:
        with self._lock:
            self._keys.pop(name, None)

    def clear(self) -> None:
        with self._lock:
            self._keys.clear()


def _load_account_key(storage: Storage, name: str) -> AccountKey | None:
    raw = storage.get(name)
    if raw is None:
        return None
    return codec.decode_account_key(raw)


def create_account(acme: AcmeSettings, storage: Storage) -> AccountKey:
    """Return the stored account key, generating it on first call.

    Safe to call concurrently: the key is written with ``add`` and a
    loser of the race reads back the winner's key.
    """
    name = account_name(acme)
    existing = _load_account_key(storage, name)
    if existing is not None:
        return existing

    key = AccountKey(key=private_key_to_pem(generate_private_key("ec")))
    if storage.add(name, codec.encode_account_key(key)):
        log.info("Created ACME account key for %s", acme.account_email)
        events.account_created(name, acme.account_email)
        return key

    winner = _load_account_key(storage, name)
    if winner is None:
        msg = f"Account key for {acme.account_email} vanished during creation"
        raise ConfigurationError(msg)
    return winner


# ---------------------------------------------------------------------------
# Domain allow-list
# ---------------------------------------------------------------------------


def domain_allowed(host: str, domains: tuple[str, ...]) -> bool:
    """Return True if *host* matches the allow-list.

    An empty list allows every host.  ``*.example.com`` matches exactly
    one label below ``example.com``.
    """
    if not domains:
        return True
    host = host.lower()
    for pattern in domains:
        if pattern == host:
            return True
        if pattern.startswith("*."):
            label, _, parent = host.partition(".")
            if label and parent == pattern[2:]:
                return True
    return False


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class AcmeClient:
    """Place certificate orders under one ACME account."""

    def __init__(
        self,
        acme: AcmeSettings,
        account: AccountContext,
        issuer: Issuer,
    ) -> None:
        self._acme = acme
        self._account = account
        self._issuer = issuer

    @classmethod
    def new(
        cls,
        acme: AcmeSettings,
        storage: Storage,
        accounts: AccountKeyCache,
        issuer: Issuer,
    ) -> AcmeClient:
        """Build a client for the account configured in *acme*.

        Raises
        ------
        AccountNotFoundError
            If no account key is stored for ``acme.account_email``.
        SerializationError
            If the stored account key is corrupt.

        """
        name = account_name(acme)
        key = accounts.get(name, lambda: _load_account_key(storage, name))
        if key is None:
            raise AccountNotFoundError(acme.account_email)
        return cls(acme, AccountContext(name=name, email=acme.account_email, key=key), issuer)

    @property
    def account(self) -> AccountContext:
        return self._account

    def order_certificate(self, host: str, key_pem: str | None = None) -> IssuedCertificate:
        """Obtain a certificate for *host*.

        Parameters
        ----------
        host:
            The hostname to certify.
        key_pem:
            Private key to reuse; a new one is generated when omitted.

        Raises
        ------
        IssuanceError
            If *host* is not allowed or the CA does not deliver.

        """
        host = host.lower()
        if not domain_allowed(host, self._acme.domains):
            msg = f"Host {host} is not in the configured domain list"
            raise IssuanceError(msg)

        if key_pem is None:
            key = generate_private_key(self._acme.key_type, self._acme.rsa_key_size)
            key_pem = private_key_to_pem(key)
        else:
            key = load_private_key(key_pem)

        csr = build_csr(host, key)
        issued = self._issuer.issue(host, csr, self._account)
        return dataclasses.replace(issued, key_pem=key_pem)
