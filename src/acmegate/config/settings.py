"""Typed, frozen dataclasses for every configuration section.

This module is the **single source of truth** for default values.
JSON Schema defaults exist only for documentation; these builders
are what the application actually reads.

Access pattern::

    from acmegate.config import get_config

    acme = get_config().settings.acme
    print(acme.account_email, acme.renew_threshold_days)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

LETSENCRYPT_PRODUCTION = "https://acme-v02.api.letsencrypt.org/directory"
LETSENCRYPT_STAGING = "https://acme-staging-v02.api.letsencrypt.org/directory"

# ---------------------------------------------------------------------------
# ACME account and issuance
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AcmeSettings:
    """ACME account, directory and issuance parameters."""

    account_email: str
    api_uri: str
    tos_accepted: bool
    eab_kid: str | None
    eab_hmac_key: str | None
    domains: tuple[str, ...]
    renew_threshold_days: int
    fail_backoff_minutes: int
    challenge_type: str
    challenge_handler: str
    challenge_handler_config: dict[str, Any] = field(default_factory=dict)
    state_path: str = "./acme_state"
    key_type: str = "ec"
    rsa_key_size: int = 4096
    proxy_url: str | None = None
    verify_ssl: bool = True

    @property
    def renew_threshold_seconds(self) -> int:
        return self.renew_threshold_days * 86400


def _build_acme(data: dict | None) -> AcmeSettings:
    d = data or {}
    return AcmeSettings(
        account_email=d["account_email"],
        api_uri=d.get("api_uri", LETSENCRYPT_PRODUCTION),
        tos_accepted=d.get("tos_accepted", False),
        eab_kid=d.get("eab_kid"),
        eab_hmac_key=d.get("eab_hmac_key"),
        domains=tuple(h.lower() for h in d.get("domains", [])),
        renew_threshold_days=d.get("renew_threshold_days", 14),
        fail_backoff_minutes=d.get("fail_backoff_minutes", 5),
        challenge_type=d.get("challenge_type", "http-01"),
        challenge_handler=d.get("challenge_handler", "storage_http"),
        challenge_handler_config=dict(d.get("challenge_handler_config") or {}),
        state_path=d.get("state_path", "./acme_state"),
        key_type=d.get("key_type", "ec"),
        rsa_key_size=d.get("rsa_key_size", 4096),
        proxy_url=d.get("proxy_url"),
        verify_ssl=d.get("verify_ssl", True),
    )


# ---------------------------------------------------------------------------
# Flat key/value storage
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ShmSettings:
    """In-process shared memory zone."""

    shm_name: str


@dataclass(frozen=True)
class RedisSettings:
    """Redis connection for the flat key/value store."""

    url: str | None
    namespace: str
    socket_timeout: float


@dataclass(frozen=True)
class StorageSettings:
    """Flat key/value storage backend selection."""

    kind: str
    shm: ShmSettings
    redis: RedisSettings


def _build_storage(data: dict | None) -> StorageSettings:
    d = data or {}
    shm = d.get("shm") or {}
    redis = d.get("redis") or {}
    return StorageSettings(
        kind=d.get("kind", "shm"),
        shm=ShmSettings(shm_name=shm.get("shm_name", "acmegate")),
        redis=RedisSettings(
            url=redis.get("url"),
            namespace=redis.get("namespace", ""),
            socket_timeout=redis.get("socket_timeout", 5.0),
        ),
    )


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseSettings:
    """PostgreSQL connection and pool settings."""

    host: str
    port: int
    database: str
    user: str
    password: str
    sslmode: str
    min_connections: int
    max_connections: int
    connection_timeout: float
    auto_setup: bool


def _build_database(data: dict | None) -> DatabaseSettings | None:
    if not data:
        return None
    d = data
    return DatabaseSettings(
        host=d.get("host", "localhost"),
        port=d.get("port", 5432),
        database=d["database"],
        user=d["user"],
        password=d.get("password", ""),
        sslmode=d.get("sslmode", "prefer"),
        min_connections=d.get("min_connections", 1),
        max_connections=d.get("max_connections", 5),
        connection_timeout=d.get("connection_timeout", 30.0),
        auto_setup=d.get("auto_setup", False),
    )


# ---------------------------------------------------------------------------
# Renewal
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RenewalSettings:
    """Background renewal cycle settings."""

    enabled: bool
    interval_seconds: int
    lock_timeout_seconds: int
    renew_config_ttl_days: int


def _build_renewal(data: dict | None) -> RenewalSettings:
    d = data or {}
    return RenewalSettings(
        enabled=d.get("enabled", True),
        interval_seconds=d.get("interval_seconds", 86400),
        lock_timeout_seconds=d.get("lock_timeout_seconds", 900),
        renew_config_ttl_days=d.get("renew_config_ttl_days", 0),
    )


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuditLogSettings:
    """Certificate lifecycle audit log output."""

    enabled: bool
    file: str | None
    max_file_size_bytes: int
    backup_count: int


@dataclass(frozen=True)
class LoggingSettings:
    """Application logging configuration (level, format, audit)."""

    level: str
    format: str
    audit: AuditLogSettings


def _build_logging(data: dict | None) -> LoggingSettings:
    d = data or {}
    a = d.get("audit") or {}
    return LoggingSettings(
        level=d.get("level", "INFO"),
        format=d.get("format", "json"),
        audit=AuditLogSettings(
            enabled=a.get("enabled", True),
            file=a.get("file"),
            max_file_size_bytes=a.get("max_file_size_bytes", 104857600),
            backup_count=a.get("backup_count", 10),
        ),
    )


# ---------------------------------------------------------------------------
# Root settings aggregate
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AcmegateSettings:
    acme: AcmeSettings
    storage: StorageSettings
    database: DatabaseSettings | None
    renewal: RenewalSettings
    logging: LoggingSettings

    @property
    def dbless(self) -> bool:
        """True when certificates live in the flat store, not in the database."""
        return self.database is None


def build_settings(data: dict) -> AcmegateSettings:
    """Build the full typed settings tree from raw config data.

    Called once during :class:`AcmegateConfig` initialization after
    schema validation and environment-variable resolution.
    """
    return AcmegateSettings(
        acme=_build_acme(data.get("acme")),
        storage=_build_storage(data.get("storage")),
        database=_build_database(data.get("database")),
        renewal=_build_renewal(data.get("renewal")),
        logging=_build_logging(data.get("logging")),
    )
