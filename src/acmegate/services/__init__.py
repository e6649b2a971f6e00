"""Renewal services: expiry decisions, persistence, bookkeeping, cycles."""

from acmegate.services.bookkeeper import RenewalBookkeeper
from acmegate.services.certstore import (
    CertificateStore,
    DaoCertificateStore,
    KeyValueCertificateStore,
    load_certkey,
)
from acmegate.services.expiry import ExpiryCheck, ExpiryDecision, check_expire, decide
from acmegate.services.renewal import RenewalOrchestrator, RenewalReport, RenewalWorker

__all__ = [
    "CertificateStore",
    "DaoCertificateStore",
    "ExpiryCheck",
    "ExpiryDecision",
    "KeyValueCertificateStore",
    "RenewalBookkeeper",
    "RenewalOrchestrator",
    "RenewalReport",
    "RenewalWorker",
    "check_expire",
    "decide",
    "load_certkey",
]
