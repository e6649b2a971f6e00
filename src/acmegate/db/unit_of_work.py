"""Several statements on one connection, committed together.

Each :class:`pypgkit.BaseRepository` call borrows its own pooled
connection, so the certificate store cannot use the repositories to
insert a certificate and repoint its SNI atomically.  Inside a
:class:`UnitOfWork` every statement shares the connection of a single
``Database.transaction()``::

    with UnitOfWork(db) as uow:
        uow.insert("certificates", {...})
        sni = uow.fetch_one("SELECT * FROM snis WHERE name = %s FOR UPDATE", (host,))
        uow.update_where("snis", {"certificate_id": new_id}, {"id": sni["id"]})

The transaction commits when the block exits cleanly and rolls back if
it raises.  Table and column names are interpolated; only pass
identifiers from code, never from input.
"""

from __future__ import annotations

from typing import Any, Self

from psycopg.rows import dict_row
from pypgkit import Database


def _where(columns: dict[str, Any]) -> str:
    return " AND ".join(f"{col} = %s" for col in columns)


class UnitOfWork:
    """Context manager over :meth:`Database.transaction`."""

    def __init__(self, database: Database | None = None) -> None:
        self._db = database or Database.get_instance()
        self._tx = None
        self._conn = None

    def __enter__(self) -> Self:
        self._tx = self._db.transaction()
        self._conn = self._tx.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        try:
            self._tx.__exit__(exc_type, exc_val, exc_tb)
        finally:
            self._tx = self._conn = None

    @property
    def _connection(self):
        assert self._conn is not None, "UnitOfWork must be used as a context manager"
        return self._conn

    def _query(self, sql: str, params) -> dict[str, Any] | None:
        with self._connection.cursor(row_factory=dict_row) as cur:
            cur.execute(sql, params)
            return cur.fetchone()

    def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        """Insert *row* into *table* and return it as stored."""
        columns = ", ".join(row)
        values = ", ".join("%s" for _ in row)
        return self._query(
            f"INSERT INTO {table} ({columns}) VALUES ({values}) RETURNING *",
            list(row.values()),
        )

    def update_where(
        self,
        table: str,
        set_values: dict[str, Any],
        where: dict[str, Any],
    ) -> dict[str, Any] | None:
        """Apply *set_values* to rows matching *where*.

        Returns the first updated row, or ``None`` when nothing matched.
        """
        assignments = ", ".join(f"{col} = %s" for col in set_values)
        return self._query(
            f"UPDATE {table} SET {assignments} WHERE {_where(where)} RETURNING *",
            [*set_values.values(), *where.values()],
        )

    def delete_where(self, table: str, where: dict[str, Any]) -> int:
        """Delete rows matching every column in *where*; returns the rowcount."""
        return self.execute(f"DELETE FROM {table} WHERE {_where(where)}", list(where.values()))

    def fetch_one(
        self,
        sql: str,
        params: tuple | list | None = None,
    ) -> dict[str, Any] | None:
        return self._query(sql, params)

    def execute(self, sql: str, params: tuple | list | None = None) -> int:
        with self._connection.cursor() as cur:
            cur.execute(sql, params)
            return cur.rowcount
