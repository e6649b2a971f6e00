"""Entity models for acmegate.

All models are frozen dataclasses.  Use :func:`dataclasses.replace`
for modifications (copy-on-write).
"""

from acmegate.models.certificate import CertificateRecord
from acmegate.models.entries import AccountKey, CertKey, RenewConfig
from acmegate.models.sni import SniBinding

__all__ = [
    "AccountKey",
    "CertKey",
    "CertificateRecord",
    "RenewConfig",
    "SniBinding",
]
