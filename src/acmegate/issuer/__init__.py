"""Certificate issuance for acmegate.

Public API::

    from acmegate.issuer import AcmeowIssuer, IssuanceError, lookup_challenge
"""

from acmegate.issuer.acme import AcmeowIssuer
from acmegate.issuer.base import AccountContext, IssuanceError, IssuedCertificate, Issuer
from acmegate.issuer.handlers import lookup_challenge

__all__ = [
    "AccountContext",
    "AcmeowIssuer",
    "IssuanceError",
    "IssuedCertificate",
    "Issuer",
    "lookup_challenge",
]
