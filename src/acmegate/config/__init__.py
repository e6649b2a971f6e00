"""Configuration subsystem for acmegate.

Public API::

    from acmegate.config import get_config, AcmegateConfig

    # At startup:
    AcmegateConfig(config_file="config.yaml")

    # Everywhere else:
    cfg = get_config()
    days = cfg.settings.acme.renew_threshold_days   # typed access
    url = cfg.get("storage.redis.url")              # dynamic dot-path
"""

from acmegate.config.acmegate_config import (
    AcmegateConfig,
    ConfigValidationError,
    get_config,
)
from acmegate.config.settings import (
    AcmegateSettings,
    AcmeSettings,
    AuditLogSettings,
    DatabaseSettings,
    LoggingSettings,
    RedisSettings,
    RenewalSettings,
    ShmSettings,
    StorageSettings,
    build_settings,
)

__all__ = [
    "AcmeSettings",
    # Core
    "AcmegateConfig",
    # Root
    "AcmegateSettings",
    "AuditLogSettings",
    "ConfigValidationError",
    # Sections
    "DatabaseSettings",
    "LoggingSettings",
    "RedisSettings",
    "RenewalSettings",
    "ShmSettings",
    "StorageSettings",
    "build_settings",
    "get_config",
]
