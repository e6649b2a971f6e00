"""Repository classes for the acmegate persistence layer.

Each repository extends :class:`pypgkit.BaseRepository` with custom
query methods for certificates, SNIs and the flat key/value table.
"""

from acmegate.repositories.certificate import CertificateRepository
from acmegate.repositories.kv import KeyValueRepository
from acmegate.repositories.sni import SniRepository

__all__ = [
    "CertificateRepository",
    "KeyValueRepository",
    "SniRepository",
]
