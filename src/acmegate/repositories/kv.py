"""Key/value repository backing the ``database`` storage kind."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from pypgkit import BaseRepository, Database


@dataclass(frozen=True)
class KeyValueRow:
    key: str
    value: str
    expires_at: datetime | None = None


def _expiry(ttl: float | None) -> datetime | None:
    if not ttl:
        return None
    return datetime.now(UTC) + timedelta(seconds=ttl)


class KeyValueRepository(BaseRepository[KeyValueRow]):
    table_name = "acme_storage"
    primary_key = "key"

    def _row_to_entity(self, row: dict) -> KeyValueRow:
        return KeyValueRow(
            key=row["key"],
            value=row["value"],
            expires_at=row.get("expires_at"),
        )

    def _entity_to_row(self, entity: KeyValueRow) -> dict:
        return {
            "key": entity.key,
            "value": entity.value,
            "expires_at": entity.expires_at,
        }

    def get(self, key: str) -> str | None:
        """Return the live value stored at *key*, or None."""
        db = Database.get_instance()
        return db.fetch_value(
            "SELECT value FROM acme_storage "
            "WHERE key = %s AND (expires_at IS NULL OR expires_at > now())",
            (key,),
        )

    def put(self, key: str, value: str, ttl: float | None = None) -> None:
        """Insert or overwrite *key*."""
        db = Database.get_instance()
        db.execute(
            "INSERT INTO acme_storage (key, value, expires_at) VALUES (%s, %s, %s) "
            "ON CONFLICT (key) DO UPDATE "
            "SET value = EXCLUDED.value, expires_at = EXCLUDED.expires_at",
            (key, value, _expiry(ttl)),
        )

    def put_if_absent(self, key: str, value: str, ttl: float | None = None) -> bool:
        """Insert *key* only if no live row exists.

        An expired row under the same key is removed first so that a
        lock left behind by a crashed holder can be taken again.
        Returns True if the row was inserted.
        """
        db = Database.get_instance()
        with db.transaction() as conn, conn.cursor() as cur:
            cur.execute(
                "DELETE FROM acme_storage WHERE key = %s AND expires_at <= now()",
                (key,),
            )
            cur.execute(
                "INSERT INTO acme_storage (key, value, expires_at) VALUES (%s, %s, %s) "
                "ON CONFLICT (key) DO NOTHING",
                (key, value, _expiry(ttl)),
            )
            return cur.rowcount > 0

    def delete_key(self, key: str) -> None:
        """Delete *key* if present."""
        db = Database.get_instance()
        db.execute("DELETE FROM acme_storage WHERE key = %s", (key,))

    def keys_with_prefix(self, prefix: str) -> list[str]:
        """Return live keys starting with *prefix*, sorted."""
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        db = Database.get_instance()
        rows = db.fetch_all(
            "SELECT key FROM acme_storage "
            "WHERE key LIKE %s AND (expires_at IS NULL OR expires_at > now()) "
            "ORDER BY key",
            (escaped + "%",),
            as_dict=True,
        )
        return [r["key"] for r in rows]

    def purge_expired(self) -> int:
        """Delete expired rows. Returns the count of deleted rows."""
        db = Database.get_instance()
        return db.execute("DELETE FROM acme_storage WHERE expires_at <= now()")
