"""SNI repository."""

from __future__ import annotations

from pypgkit import BaseRepository, Database

from acmegate.core.types import MANAGED_TAG
from acmegate.models.sni import SniBinding


class SniRepository(BaseRepository[SniBinding]):
    table_name = "snis"
    primary_key = "id"

    def _row_to_entity(self, row: dict) -> SniBinding:
        return SniBinding(
            id=row["id"],
            name=row["name"],
            certificate_id=row["certificate_id"],
            tags=tuple(row.get("tags") or ()),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _entity_to_row(self, entity: SniBinding) -> dict:
        return {
            "id": entity.id,
            "name": entity.name,
            "certificate_id": entity.certificate_id,
            "tags": list(entity.tags),
        }

    def find_by_name(self, name: str) -> SniBinding | None:
        """Find the binding for hostname *name*."""
        return self.find_one_by({"name": name})

    def find_managed(self) -> list[SniBinding]:
        """Return every SNI created by acmegate, ordered by name."""
        db = Database.get_instance()
        rows = db.fetch_all(
            "SELECT * FROM snis WHERE %s = ANY(tags) ORDER BY name",
            (MANAGED_TAG,),
            as_dict=True,
        )
        return [self._row_to_entity(r) for r in rows]
