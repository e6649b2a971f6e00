"""Structured certificate lifecycle event logger.

Emits standardized events for audit trails.  All events are logged to
the ``acmegate.events`` logger with a consistent ``event_id`` field for
filtering and alerting.

Key and certificate bodies are redacted via
:func:`~acmegate.logging.sanitize.sanitize_for_logs` before emission.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from acmegate.logging.sanitize import sanitize_for_logs

if TYPE_CHECKING:
    from uuid import UUID

events_log = logging.getLogger("acmegate.events")


def _emit(
    event_id: str,
    message: str,
    *args: Any,  # noqa: ANN401
    severity: str = "INFO",
    **extra: Any,  # noqa: ANN401
) -> None:
    """Emit a structured lifecycle event."""
    data: dict[str, object] = {
        "event_id": event_id,
        "severity": severity,
    }
    data.update(sanitize_for_logs(extra))
    level = getattr(logging, severity.upper(), logging.INFO)
    events_log.log(level, message, *args, extra=data)


def account_created(account_name: str, email: str) -> None:
    """Log creation of a new ACME account key."""
    _emit(
        "acmegate.events.account_created",
        "ACME account key created for %s",
        email,
        account_name=account_name,
    )


def certificate_saved(
    host: str,
    certificate_id: UUID | str | None,
    *,
    replaced_id: UUID | str | None = None,
) -> None:
    """Log persistence of new certificate material for *host*."""
    _emit(
        "acmegate.events.certificate_saved",
        "Certificate saved for %s",
        host,
        certificate_id=str(certificate_id) if certificate_id is not None else None,
        replaced_id=str(replaced_id) if replaced_id is not None else None,
    )


def certificate_deleted(certificate_id: UUID | str, reason: str) -> None:
    """Log deletion of a certificate that no SNI references anymore."""
    _emit(
        "acmegate.events.certificate_deleted",
        "Certificate %s deleted (%s)",
        certificate_id,
        reason,
    )


def renew_config_cleaned(host: str) -> None:
    """Log removal of a renewal entry whose certificate is gone."""
    _emit(
        "acmegate.events.renew_config_cleaned",
        "Renewal entry for %s removed: certificate no longer exists",
        host,
        severity="WARNING",
    )


def renewal_failed(host: str, error: str, *, retryable: bool) -> None:
    """Log a failed renewal for *host*."""
    _emit(
        "acmegate.events.renewal_failed",
        "Renewal failed for %s: %s",
        host,
        error,
        severity="ERROR",
        retryable=retryable,
    )
