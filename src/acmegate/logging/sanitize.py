"""Redaction of key material before it reaches a log line.

Lifecycle events carry certificate and account data; anything that
looks like a PEM block keeps its BEGIN/END armour but loses its body,
and fields named in :data:`SECRET_FIELDS` are blanked whatever they hold.
"""

from __future__ import annotations

import re
from typing import Any

REDACTED = "[REDACTED]"

SECRET_FIELDS = frozenset({"key", "key_pem", "private_key", "eab_hmac_key", "password"})

_PEM_BLOCK = re.compile(
    r"(?P<begin>-----BEGIN [A-Z0-9 ]+-----)[\s\S]*?(?P<end>-----END [A-Z0-9 ]+-----)",
)


def sanitize_pem(pem: str) -> str:
    """Return *pem* with every block body replaced by ``[REDACTED]``."""
    return _PEM_BLOCK.sub(rf"\g<begin>\n{REDACTED}\n\g<end>", pem)


def _is_secret(field: Any, value: Any) -> bool:  # noqa: ANN401
    return field in SECRET_FIELDS and bool(value)


def sanitize_for_logs(data: Any) -> Any:  # noqa: ANN401
    """Copy *data* with secrets redacted; containers are walked recursively."""
    if isinstance(data, str):
        return sanitize_pem(data) if "-----BEGIN " in data else data
    if isinstance(data, dict):
        return {
            field: REDACTED if _is_secret(field, value) else sanitize_for_logs(value)
            for field, value in data.items()
        }
    if isinstance(data, (list, tuple)):
        return type(data)(map(sanitize_for_logs, data))
    return data
