"""Unit tests for acmegate.db.init: database initialisation."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import psycopg
import pytest

from acmegate.config.settings import DatabaseSettings
from acmegate.db.init import _SCHEMA_PATH, _settings_to_config, init_database
from acmegate.storage.base import StorageError, StorageUnavailable


def _db_settings(auto_setup: bool = False) -> DatabaseSettings:
    return DatabaseSettings(
        host="db.internal",
        port=5433,
        database="acmegate",
        user="gw",
        password="pw",
        sslmode="require",
        min_connections=1,
        max_connections=4,
        connection_timeout=10.0,
        auto_setup=auto_setup,
    )


class TestSettingsToConfig:
    @patch("acmegate.db.init.DatabaseConfig")
    def test_maps_fields(self, config_cls):
        _settings_to_config(_db_settings())
        config_cls.assert_called_once_with(
            host="db.internal",
            port=5433,
            database="acmegate",
            user="gw",
            password="pw",
            sslmode="require",
            min_connections=1,
            max_connections=4,
            connection_timeout=10.0,
        )


class TestInitDatabase:
    @patch("acmegate.db.init.Database")
    def test_returns_existing_instance(self, database_cls):
        existing = MagicMock()
        database_cls.is_initialized.return_value = True
        database_cls.get_instance.return_value = existing

        assert init_database(_db_settings()) is existing
        database_cls.init.assert_not_called()

    @patch("acmegate.db.init.DatabaseConfig")
    @patch("acmegate.db.init.Database")
    def test_auto_setup_passes_schema(self, database_cls, _config_cls):
        database_cls.is_initialized.return_value = False

        init_database(_db_settings(auto_setup=True))

        kwargs = database_cls.init.call_args.kwargs
        assert kwargs["schema_path"] == _SCHEMA_PATH
        assert kwargs["auto_setup"] is True
        assert kwargs["interactive"] is False

    @patch("acmegate.db.init.DatabaseConfig")
    @patch("acmegate.db.init.Database")
    def test_without_auto_setup_no_schema(self, database_cls, _config_cls):
        database_cls.is_initialized.return_value = False
        init_database(_db_settings())
        assert database_cls.init.call_args.kwargs["schema_path"] is None

    @patch("acmegate.db.init.DatabaseConfig")
    @patch("acmegate.db.init.Database")
    def test_missing_tables_reported(self, database_cls, _config_cls):
        database_cls.is_initialized.return_value = False
        db = database_cls.init.return_value
        db.fetch_value.side_effect = lambda sql, params: None if params == ("snis",) else params[0]

        with pytest.raises(StorageError, match=r"lacks table\(s\) snis"):
            init_database(_db_settings())

    @patch("acmegate.db.init.DatabaseConfig")
    @patch("acmegate.db.init.Database")
    def test_auto_setup_skips_table_check(self, database_cls, _config_cls):
        database_cls.is_initialized.return_value = False
        init_database(_db_settings(auto_setup=True))
        database_cls.init.return_value.fetch_value.assert_not_called()

    @patch("acmegate.db.init.DatabaseConfig")
    @patch("acmegate.db.init.Database")
    def test_unreachable_server(self, database_cls, _config_cls):
        database_cls.is_initialized.return_value = False
        database_cls.init.side_effect = psycopg.OperationalError("refused")

        with pytest.raises(StorageUnavailable, match="gw@db.internal:5433/acmegate"):
            init_database(_db_settings())

    def test_schema_file_ships(self):
        sql = _SCHEMA_PATH.read_text(encoding="utf-8")
        assert "CREATE TABLE IF NOT EXISTS certificates" in sql
        assert "name            TEXT NOT NULL UNIQUE" in sql
        assert "CREATE TABLE IF NOT EXISTS acme_storage" in sql
