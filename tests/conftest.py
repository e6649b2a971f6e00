"""Root conftest for the acmegate test suite."""

from __future__ import annotations

import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import yaml

# ---------------------------------------------------------------------------
# Make ``src/`` importable without installing the package
# ---------------------------------------------------------------------------
_SRC = str(Path(__file__).resolve().parent.parent / "src")
if _SRC not in sys.path:
    sys.path.insert(0, _SRC)


# ---------------------------------------------------------------------------
# Minimal config data shared by multiple test modules
# ---------------------------------------------------------------------------


@pytest.fixture()
def minimal_config_data() -> dict:
    """Return a dict containing the minimum required config fields."""
    return {
        "acme": {
            "account_email": "admin@example.com",
            "api_uri": "https://acme-staging-v02.api.letsencrypt.org/directory",
        },
    }


@pytest.fixture()
def tmp_config_file(tmp_path: Path, minimal_config_data: dict) -> Path:
    """Write *minimal_config_data* to a temp YAML file and return its path."""
    cfg = tmp_path / "config.yaml"
    cfg.write_text(
        yaml.safe_dump(minimal_config_data, default_flow_style=False, sort_keys=False),
        encoding="utf-8",
    )
    return cfg


@pytest.fixture()
def settings_factory():
    """Return a builder for :class:`AcmegateSettings` with test defaults.

    Keyword arguments are merged into the ``acme`` section; ``storage``,
    ``renewal`` and ``database`` replace their sections.
    """
    from acmegate.config.settings import build_settings

    def _build(*, storage=None, renewal=None, database=None, **acme):
        data = {
            "acme": {
                "account_email": "admin@example.com",
                "api_uri": "https://acme-staging-v02.api.letsencrypt.org/directory",
                "renew_threshold_days": 30,
                **acme,
            },
            "storage": storage or {"kind": "shm", "shm": {"shm_name": "test"}},
            "renewal": renewal or {},
        }
        if database is not None:
            data["database"] = database
        return build_settings(data)

    return _build


# ---------------------------------------------------------------------------
# Certificates
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_cert():
    """Return a factory ``(host, expires_in_seconds) -> (cert_pem, key_pem)``.

    Builds a self-signed EC certificate whose ``notAfter`` lies
    *expires_in_seconds* from now (negative for already expired).
    """
    from cryptography import x509
    from cryptography.hazmat.primitives import hashes, serialization
    from cryptography.hazmat.primitives.asymmetric import ec
    from cryptography.x509.oid import NameOID

    def _make(host: str = "example.com", expires_in_seconds: int = 90 * 86400):
        key = ec.generate_private_key(ec.SECP256R1())
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, host)])
        not_after = datetime.now(UTC).replace(microsecond=0) + timedelta(
            seconds=expires_in_seconds,
        )
        cert = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(not_after - timedelta(days=90))
            .not_valid_after(not_after)
            .add_extension(x509.SubjectAlternativeName([x509.DNSName(host)]), critical=False)
            .sign(key, hashes.SHA256())
        )
        cert_pem = cert.public_bytes(serialization.Encoding.PEM).decode("ascii")
        key_pem = key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode("ascii")
        return cert_pem, key_pem

    return _make


# ---------------------------------------------------------------------------
# Singleton cleanup, autouse so every test gets a fresh slate
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def fresh_config():
    """Reset the AcmegateConfig singleton before and after every test."""
    from acmegate.config.acmegate_config import AcmegateConfig

    AcmegateConfig.reset()
    yield
    AcmegateConfig.reset()


@pytest.fixture(autouse=True)
def fresh_shm():
    """Drop every in-process shm zone around each test."""
    from acmegate.storage.shm import reset_zones

    reset_zones()
    yield
    reset_zones()
