"""Database subsystem for acmegate (database mode only).

Public API::

    from acmegate.db import init_database, UnitOfWork
"""

from acmegate.db.init import init_database
from acmegate.db.unit_of_work import UnitOfWork

__all__ = [
    "UnitOfWork",
    "init_database",
]
