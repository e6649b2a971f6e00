"""Logging configuration for acmegate.

Every record emitted while a renewal cycle runs carries the cycle id
and the host being processed.  The orchestrator binds them with
:func:`renewal_context`; :class:`RenewalContextFilter` copies them onto
the record so both formatters can print them.
"""

from __future__ import annotations

import contextlib
import contextvars
import json
import logging
import sys
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

    from acmegate.config.settings import LoggingSettings

_CONTEXT_ATTRS = ("cycle_id", "host")

# Attributes every LogRecord has; anything else was passed via ``extra``.
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)),
) | {"message", "asctime", *_CONTEXT_ATTRS}

_cycle_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "acmegate_cycle_id",
    default=None,
)
_host: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "acmegate_host",
    default=None,
)

# Loggers of libraries acmegate drives; their INFO chatter is noise here.
_QUIET_LIBRARIES = ("urllib3", "psycopg", "psycopg.pool", "redis")


@contextlib.contextmanager
def renewal_context(
    *,
    cycle_id: str | None = None,
    host: str | None = None,
) -> Iterator[None]:
    """Bind *cycle_id* and/or *host* to log records emitted inside the block."""
    tokens = []
    if cycle_id is not None:
        tokens.append((_cycle_id, _cycle_id.set(cycle_id)))
    if host is not None:
        tokens.append((_host, _host.set(host)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


class RenewalContextFilter(logging.Filter):
    """Set ``cycle_id`` and ``host`` on every record (``"-"`` outside a cycle).

    Values passed explicitly through ``extra`` win over the context.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        for attr, var in (("cycle_id", _cycle_id), ("host", _host)):
            if not hasattr(record, attr):
                setattr(record, attr, var.get() or "-")
        return True


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------


class StructuredFormatter(logging.Formatter):
    """One JSON object per line.

    Standard fields come first, then the renewal context, then any
    ``extra`` attributes (lifecycle events put ``event_id`` there).
    """

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()
        data: dict = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.message,
        }
        for attr in _CONTEXT_ATTRS:
            value = getattr(record, attr, None)
            if value is not None:
                data[attr] = value
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS and not key.startswith("_"):
                data.setdefault(key, value)
        if record.exc_info and record.exc_info[0] is not None:
            data["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            data["stack_info"] = self.formatStack(record.stack_info)
        return json.dumps(data, default=str)


class TextFormatter(logging.Formatter):
    """Console format for development."""

    _FMT = "%(asctime)s %(levelname)-8s [%(cycle_id)s] %(host)s %(name)s: %(message)s"

    def __init__(self) -> None:
        super().__init__(fmt=self._FMT, datefmt="%Y-%m-%d %H:%M:%S")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def _audit_handler(settings: LoggingSettings, ctx_filter: logging.Filter) -> logging.Handler:
    handler = RotatingFileHandler(
        settings.audit.file,
        maxBytes=settings.audit.max_file_size_bytes,
        backupCount=settings.audit.backup_count,
    )
    handler.setFormatter(StructuredFormatter())
    handler.addFilter(ctx_filter)
    return handler


def configure_logging(settings: LoggingSettings) -> logging.Logger:
    """Configure the ``acmegate`` logger tree and return its root.

    Console output goes to stderr in ``settings.format``.  Lifecycle
    events on ``acmegate.events`` are additionally written as JSON to
    ``settings.audit.file`` when one is set; with auditing disabled only
    warnings and above are emitted there.
    """
    root = logging.getLogger("acmegate")
    root.setLevel(getattr(logging, settings.level.upper(), logging.INFO))
    root.handlers.clear()
    root.propagate = False

    ctx_filter = RenewalContextFilter()
    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(StructuredFormatter() if settings.format == "json" else TextFormatter())
    console.addFilter(ctx_filter)
    root.addHandler(console)

    events = logging.getLogger("acmegate.events")
    events.setLevel(logging.INFO if settings.audit.enabled else logging.WARNING)
    if settings.audit.enabled and settings.audit.file:
        try:
            events.addHandler(_audit_handler(settings, ctx_filter))
        except OSError as exc:
            root.warning("Could not open audit log file %s: %s", settings.audit.file, exc)

    for name in _QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root
