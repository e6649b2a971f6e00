"""Storage backend registry.

Usage::

    from acmegate.storage.registry import create_storage

    storage = create_storage(settings, db=db)
    storage.set("acmegate:renew_config:example.com", payload)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from acmegate.core.types import StorageKind
from acmegate.storage.base import Storage, StorageError

if TYPE_CHECKING:
    from pypgkit import Database

    from acmegate.config.settings import AcmegateSettings

log = logging.getLogger(__name__)


def create_storage(settings: AcmegateSettings, db: Database | None = None) -> Storage:
    """Build the storage backend selected by ``storage.kind``.

    Parameters
    ----------
    settings:
        The full settings tree.
    db:
        Initialised database, required for the ``database`` kind.

    Raises
    ------
    StorageError
        If the kind is unknown or its prerequisites are missing.

    """
    kind = settings.storage.kind

    if kind == StorageKind.SHM:
        from acmegate.storage.shm import ShmStorage

        log.info("Using shm storage zone '%s'", settings.storage.shm.shm_name)
        return ShmStorage(settings.storage.shm.shm_name)

    if kind == StorageKind.REDIS:
        from acmegate.storage.redis_store import RedisStorage

        log.info("Using redis storage")
        return RedisStorage(settings.storage.redis)

    if kind == StorageKind.DATABASE:
        if db is None:
            msg = "storage.kind 'database' requires an initialised database"
            raise StorageError(msg)
        from acmegate.repositories.kv import KeyValueRepository
        from acmegate.storage.database import DatabaseStorage

        log.info("Using database storage")
        return DatabaseStorage(KeyValueRepository(db))

    msg = f"Unknown storage kind '{kind}'; options: {sorted(k.value for k in StorageKind)}"
    raise StorageError(msg)
