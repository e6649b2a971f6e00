"""Connect acmegate to PostgreSQL for database mode.

The database is optional: when the configuration has no ``database``
section the container never calls :func:`init_database` and
certificates live in the flat store instead.

Usage::

    from acmegate.db.init import init_database

    db = init_database(settings.database)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

import psycopg
from pypgkit import Database, DatabaseConfig

from acmegate.storage.base import StorageError, StorageUnavailable

if TYPE_CHECKING:
    from acmegate.config.settings import DatabaseSettings

_SCHEMA_PATH = Path(__file__).parent / "schema.sql"

# Tables the certificate store and the database storage kind read.
_REQUIRED_TABLES = ("certificates", "snis", "acme_storage")

log = logging.getLogger(__name__)


def _settings_to_config(settings: DatabaseSettings) -> DatabaseConfig:
    return DatabaseConfig(
        host=settings.host,
        port=settings.port,
        database=settings.database,
        user=settings.user,
        password=settings.password,
        sslmode=settings.sslmode,
        min_connections=settings.min_connections,
        max_connections=settings.max_connections,
        connection_timeout=settings.connection_timeout,
    )


def _missing_tables(db: Database) -> list[str]:
    return [
        name
        for name in _REQUIRED_TABLES
        if db.fetch_value("SELECT to_regclass(%s)", (name,)) is None
    ]


def init_database(settings: DatabaseSettings) -> Database:
    """Return the :class:`Database` singleton, creating it on first call.

    With ``auto_setup`` the bundled ``schema.sql`` is applied; without
    it the acmegate tables must already exist.

    Raises
    ------
    StorageUnavailable
        If the server cannot be reached.
    StorageError
        If a required table is missing and ``auto_setup`` is off.

    """
    if Database.is_initialized():
        return Database.get_instance()

    target = f"{settings.user}@{settings.host}:{settings.port}/{settings.database}"
    log.info("Connecting to certificate database %s", target)

    try:
        db = Database.init(
            config=_settings_to_config(settings),
            schema_path=_SCHEMA_PATH if settings.auto_setup else None,
            auto_setup=settings.auto_setup,
            interactive=False,
        )
        missing = [] if settings.auto_setup else _missing_tables(db)
    except psycopg.OperationalError as exc:
        msg = f"Cannot connect to database {target}: {exc}"
        raise StorageUnavailable(msg) from exc

    if missing:
        msg = (
            f"Database {target} lacks table(s) {', '.join(missing)}; "
            "apply schema.sql or set database.auto_setup"
        )
        raise StorageError(msg)

    log.info("Certificate database ready (auto_setup=%s)", settings.auto_setup)
    return db
