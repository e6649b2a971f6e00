"""Certificate repository."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pypgkit import BaseRepository, Database

from acmegate.core.types import MANAGED_TAG
from acmegate.models.certificate import CertificateRecord

if TYPE_CHECKING:
    from uuid import UUID


class CertificateRepository(BaseRepository[CertificateRecord]):
    table_name = "certificates"
    primary_key = "id"

    def _row_to_entity(self, row: dict) -> CertificateRecord:
        return CertificateRecord(
            id=row["id"],
            cert=row["cert"],
            key=row["key"],
            tags=tuple(row.get("tags") or ()),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _entity_to_row(self, entity: CertificateRecord) -> dict:
        return {
            "id": entity.id,
            "cert": entity.cert,
            "key": entity.key,
            "tags": list(entity.tags),
        }

    def find_unreferenced(self) -> list[CertificateRecord]:
        """Return managed certificates that no SNI points at."""
        db = Database.get_instance()
        rows = db.fetch_all(
            "SELECT c.* FROM certificates c "
            "WHERE %s = ANY(c.tags) "
            "  AND NOT EXISTS (SELECT 1 FROM snis s WHERE s.certificate_id = c.id) "
            "ORDER BY c.created_at",
            (MANAGED_TAG,),
            as_dict=True,
        )
        return [self._row_to_entity(r) for r in rows]

    def delete_if_unreferenced(self, certificate_id: UUID) -> bool:
        """Delete *certificate_id* unless an SNI still references it.

        Returns True if the row was deleted.
        """
        db = Database.get_instance()
        count = db.execute(
            "DELETE FROM certificates c "
            "WHERE c.id = %s "
            "  AND NOT EXISTS (SELECT 1 FROM snis s WHERE s.certificate_id = c.id)",
            (certificate_id,),
        )
        return count > 0
