"""JSON encoding for the values kept in the flat key/value store.

Every ``decode_*`` function raises
:class:`~acmegate.storage.base.SerializationError` on malformed JSON or
missing fields.  A corrupt value is never mistaken for an absent one.
"""

from __future__ import annotations

import json
from typing import Any

from acmegate.models.entries import AccountKey, CertKey, RenewConfig
from acmegate.storage.base import SerializationError


def _loads(raw: str, what: str) -> dict[str, Any]:
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as exc:
        msg = f"Stored {what} is not valid JSON: {exc}"
        raise SerializationError(msg) from exc
    if not isinstance(data, dict):
        msg = f"Stored {what} must be a JSON object, got {type(data).__name__}"
        raise SerializationError(msg)
    return data


def _require(data: dict[str, Any], field: str, kind: type, what: str) -> Any:  # noqa: ANN401
    value = data.get(field)
    if not isinstance(value, kind) or isinstance(value, bool):
        msg = f"Stored {what} has missing or invalid field '{field}'"
        raise SerializationError(msg)
    return value


# -- RenewConfig -------------------------------------------------------------


def encode_renew_config(entry: RenewConfig) -> str:
    return json.dumps({"host": entry.host, "expire_at": entry.expire_at})


def decode_renew_config(raw: str) -> RenewConfig:
    data = _loads(raw, "renew config")
    return RenewConfig(
        host=_require(data, "host", str, "renew config"),
        expire_at=_require(data, "expire_at", int, "renew config"),
    )


# -- CertKey -----------------------------------------------------------------


def encode_certkey(entry: CertKey) -> str:
    return json.dumps({"cert": entry.cert, "key": entry.key})


def decode_certkey(raw: str) -> CertKey:
    data = _loads(raw, "certificate")
    return CertKey(
        cert=_require(data, "cert", str, "certificate"),
        key=_require(data, "key", str, "certificate"),
    )


# -- AccountKey --------------------------------------------------------------


def encode_account_key(entry: AccountKey) -> str:
    return json.dumps({"key": entry.key, "kid": entry.kid})


def decode_account_key(raw: str) -> AccountKey:
    data = _loads(raw, "account key")
    kid = data.get("kid")
    if kid is not None and not isinstance(kid, str):
        msg = "Stored account key has invalid field 'kid'"
        raise SerializationError(msg)
    return AccountKey(key=_require(data, "key", str, "account key"), kid=kid)
