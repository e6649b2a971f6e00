"""Certificate entity."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from uuid import UUID

# Sentinel for timestamps not yet assigned by the database.
_EPOCH = datetime(1970, 1, 1)


@dataclass(frozen=True)
class CertificateRecord:
    id: UUID
    cert: str
    key: str
    tags: tuple[str, ...] = ()
    created_at: datetime = _EPOCH
    updated_at: datetime = _EPOCH
