"""Load, validate and expose the acmegate configuration file.

The gateway creates :class:`AcmegateConfig` once at startup; every
other module reads it back through :func:`get_config`::

    AcmegateConfig(config_file="/etc/acmegate/config.yaml")

    settings = get_config().settings
    settings.acme.renew_threshold_days

String values of the form ``${NAME}`` or ``${NAME:-fallback}`` are
replaced from the environment before the schema is checked, so secrets
such as ``acme.eab_hmac_key`` or ``database.password`` need not be
written to disk.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any

from configkit import ConfigKit, ConfigKitMeta

from acmegate.config.settings import (
    LETSENCRYPT_PRODUCTION,
    AcmegateSettings,
    build_settings,
)

_SCHEMA_PATH = Path(__file__).parent / "schema.json"

# ${NAME} or ${NAME:-fallback}; only a whole-string reference is expanded
_ENV_REF = re.compile(r"^\$\{([^}:]+?)(?::-(.*))?\}$", re.DOTALL)

_STORAGE_KINDS = frozenset({"shm", "redis", "database"})
_BUILTIN_HANDLERS = frozenset({"callback_dns", "file_http", "callback_http", "storage_http"})
_MIN_RSA_KEY_SIZE = 2048

log = logging.getLogger(__name__)

_instance: AcmegateConfig | None = None


def get_config() -> AcmegateConfig:
    """Return the loaded configuration.

    Raises
    ------
    RuntimeError
        If no :class:`AcmegateConfig` has been created yet.

    """
    if _instance is None:
        msg = "Configuration not initialised; create AcmegateConfig(config_file=...) first"
        raise RuntimeError(msg)
    return _instance


class ConfigValidationError(Exception):
    """One or more configuration problems, all reported at once."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        lines = "\n".join(f"  - {e}" for e in errors)
        super().__init__(f"Configuration validation failed:\n{lines}")


# ---------------------------------------------------------------------------
# ${VAR} expansion
# ---------------------------------------------------------------------------


def _expand(value: str, where: str) -> str:
    ref = _ENV_REF.match(value)
    if ref is None:
        return value
    name, fallback = ref.groups()
    if name in os.environ:
        return os.environ[name]
    if fallback is not None:
        return fallback
    msg = f"{where}: environment variable {name} is not set and '${{{name}}}' has no default"
    raise ConfigValidationError([msg])


def _expand_tree(node: Any, where: str = "") -> Any:  # noqa: ANN401
    """Return *node* with every ``${VAR}`` string expanded."""
    if isinstance(node, str):
        return _expand(node, where or "<root>")
    if isinstance(node, dict):
        return {k: _expand_tree(v, f"{where}.{k}" if where else str(k)) for k, v in node.items()}
    if isinstance(node, list):
        return [_expand_tree(v, f"{where}[{i}]") for i, v in enumerate(node)]
    return node


# ---------------------------------------------------------------------------
# Cross-field rules
# ---------------------------------------------------------------------------


def collect_errors(data: dict) -> tuple[list[str], list[str]]:
    """Return ``(errors, warnings)`` for the cross-field rules on *data*.

    Kept separate from :meth:`AcmegateConfig.additional_checks` so the
    rules can be exercised on a plain dict.
    """
    errors: list[str] = []
    warnings: list[str] = []

    acme = data.get("acme") or {}
    storage = data.get("storage") or {}
    database = data.get("database")
    renewal = data.get("renewal") or {}

    # -- acme --
    api_uri = acme.get("api_uri", LETSENCRYPT_PRODUCTION)
    if api_uri.endswith("/"):
        errors.append(f"acme.api_uri must not end with '/' (got '{api_uri}')")
    if api_uri == LETSENCRYPT_PRODUCTION and not acme.get("tos_accepted", False):
        errors.append(
            "acme.tos_accepted must be true to use the Let's Encrypt production directory",
        )
    if bool(acme.get("eab_kid")) != bool(acme.get("eab_hmac_key")):
        errors.append("acme.eab_kid and acme.eab_hmac_key must be set together")

    threshold = acme.get("renew_threshold_days", 14)
    if threshold < 0:
        errors.append(f"acme.renew_threshold_days ({threshold}) must be >= 0")

    handler = acme.get("challenge_handler", "storage_http")
    if handler not in _BUILTIN_HANDLERS and not handler.startswith("ext:"):
        errors.append(
            f"acme.challenge_handler '{handler}' is unknown. "
            f"Known handlers: {sorted(_BUILTIN_HANDLERS)}. "
            "Use 'ext:fully.qualified.FactoryClass' for custom handlers.",
        )
    if handler == "storage_http" and acme.get("challenge_type", "http-01") != "http-01":
        errors.append(
            "acme.challenge_handler 'storage_http' only supports challenge_type 'http-01'",
        )

    if acme.get("key_type", "ec") == "rsa":
        rsa_size = acme.get("rsa_key_size", 4096)
        if rsa_size < _MIN_RSA_KEY_SIZE:
            errors.append(
                f"acme.rsa_key_size ({rsa_size}) must be >= {_MIN_RSA_KEY_SIZE}",
            )

    # -- storage --
    kind = storage.get("kind", "shm")
    if kind not in _STORAGE_KINDS:
        errors.append(
            f"storage.kind '{kind}' is unknown. Known kinds: {sorted(_STORAGE_KINDS)}",
        )
    if kind == "database" and not database:
        errors.append("database section is required when storage.kind is 'database'")
    if kind == "redis" and not (storage.get("redis") or {}).get("url"):
        errors.append("storage.redis.url is required when storage.kind is 'redis'")
    if kind == "shm" and database:
        warnings.append(
            "storage.kind is 'shm' with a database configured; account keys "
            "and renewal bookkeeping are per-process and lost on restart",
        )

    # -- database --
    if database:
        min_conn = database.get("min_connections", 1)
        max_conn = database.get("max_connections", 5)
        if min_conn > max_conn:
            errors.append(
                f"database.min_connections ({min_conn}) must be <= "
                f"database.max_connections ({max_conn})",
            )

    # -- renewal --
    lock_timeout = renewal.get("lock_timeout_seconds", 900)
    if lock_timeout <= 0:
        errors.append(
            f"renewal.lock_timeout_seconds ({lock_timeout}) must be positive",
        )
    interval = renewal.get("interval_seconds", 86400)
    if interval <= 0:
        errors.append(f"renewal.interval_seconds ({interval}) must be positive")
    elif lock_timeout > interval:
        warnings.append(
            f"renewal.lock_timeout_seconds ({lock_timeout}) exceeds "
            f"renewal.interval_seconds ({interval}); a crashed cycle "
            "blocks the next one",
        )

    return errors, warnings


# ---------------------------------------------------------------------------
# Config class
# ---------------------------------------------------------------------------


class AcmegateConfig(ConfigKit):
    """The acmegate configuration, validated against the bundled schema.

    Parameters
    ----------
    config_file:
        YAML or JSON configuration file.
    schema_file:
        Accepted for :class:`ConfigKitMeta`; the bundled
        ``schema.json`` is always used.

    """

    def __init__(
        self,
        *,
        config_file: str | Path,
        schema_file: str | Path | None = None,  # noqa: ARG002
    ) -> None:
        global _instance  # noqa: PLW0603

        super().__init__(config_file=config_file, schema_file=_SCHEMA_PATH)
        self._settings: AcmegateSettings = build_settings(self.data)
        _instance = self

    def _load(self) -> None:
        # Expand before the schema runs so substituted values are validated too.
        super()._load()
        self._data.update(_expand_tree(self._data))

    @property
    def settings(self) -> AcmegateSettings:
        return self._settings

    def additional_checks(self) -> None:
        """Run :func:`collect_errors` once the schema has passed."""
        errors, warnings = collect_errors(self.data)
        for warning in warnings:
            log.warning("Config warning: %s", warning)
        if errors:
            raise ConfigValidationError(errors)

    @classmethod
    def reset(cls) -> None:
        """Forget the loaded configuration -- testing only."""
        global _instance  # noqa: PLW0603
        _instance = None
        ConfigKitMeta.reset()

    def __repr__(self) -> str:
        return f"<AcmegateConfig config_file={self.data.get('_source', '?')}>"
