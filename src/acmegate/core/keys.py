"""Key names in the flat key/value store.

Every prefix here is persisted: renaming one orphans stored state, so
the strings must stay stable across releases.

Usage::

    from acmegate.core import keys

    keys.renew_config_key("example.com")  # "acmegate:renew_config:example.com"
    keys.account_name(settings.acme)
"""

from __future__ import annotations

import base64
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from acmegate.config.settings import AcmeSettings

ACCOUNT_KEY_PREFIX = "acmegate:account:"
RENEW_KEY_PREFIX = "acmegate:renew_config:"
CERTKEY_KEY_PREFIX = "acmegate:cert_key:"
LOCK_KEY_PREFIX = "acmegate:lock:"
CHALLENGE_KEY_PREFIX = "acmegate:challenge:"


def account_name(acme: AcmeSettings) -> str:
    """Return the storage key of the ACME account for *acme*.

    Derived from the directory URL and the account email so that the
    same email registered against staging and production maps to two
    distinct accounts.
    """
    email = base64.b64encode(acme.account_email.encode("utf-8")).decode("ascii")
    return f"{ACCOUNT_KEY_PREFIX}{acme.api_uri}:{email}"


def renew_config_key(host: str) -> str:
    return RENEW_KEY_PREFIX + host


def certkey_key(host: str) -> str:
    return CERTKEY_KEY_PREFIX + host


def lock_key(name: str) -> str:
    return LOCK_KEY_PREFIX + name


def challenge_key(token: str) -> str:
    return CHALLENGE_KEY_PREFIX + token


def host_from_key(key: str, prefix: str) -> str:
    """Strip *prefix* from *key*; raise :class:`ValueError` if absent."""
    if not key.startswith(prefix):
        msg = f"Key '{key}' does not start with '{prefix}'"
        raise ValueError(msg)
    return key[len(prefix) :]
