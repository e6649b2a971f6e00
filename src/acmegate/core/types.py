"""Enumerated types and fixed identifiers shared across acmegate.

Enums inherit from ``StrEnum`` so their ``.value`` is a plain string
that round-trips through JSON config and database columns unchanged.
"""

from __future__ import annotations

from enum import StrEnum

# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class StorageKind(StrEnum):
    SHM = "shm"
    REDIS = "redis"
    DATABASE = "database"


# ---------------------------------------------------------------------------
# Key types for generated private keys
# ---------------------------------------------------------------------------


class KeyType(StrEnum):
    EC = "ec"
    RSA = "rsa"


# ---------------------------------------------------------------------------
# Challenge types forwarded to the ACME library
# ---------------------------------------------------------------------------


class ChallengeType(StrEnum):
    HTTP_01 = "http-01"
    DNS_01 = "dns-01"
    TLS_ALPN_01 = "tls-alpn-01"


# ---------------------------------------------------------------------------
# Renewal outcome per host
# ---------------------------------------------------------------------------


class RenewalAction(StrEnum):
    RENEWED = "renewed"
    CLEANED = "cleaned"
    SKIPPED = "skipped"
    FAILED = "failed"


# Tag marking certificates and SNIs owned by acmegate, distinguishing
# them from user-managed certificates during enumeration.
MANAGED_TAG = "managed-by-acme"
