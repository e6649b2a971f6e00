"""Key, CSR and certificate helpers for issuance."""

from __future__ import annotations

import hashlib

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID

from acmegate.core.types import KeyType
from acmegate.issuer.base import IssuanceError, IssuedCertificate

PrivateKey = ec.EllipticCurvePrivateKey | rsa.RSAPrivateKey


def generate_private_key(key_type: str = "ec", rsa_key_size: int = 4096) -> PrivateKey:
    """Generate a P-256 EC key or an RSA key of *rsa_key_size* bits."""
    if key_type == KeyType.RSA:
        return rsa.generate_private_key(public_exponent=65537, key_size=rsa_key_size)
    return ec.generate_private_key(ec.SECP256R1())


def private_key_to_pem(key: PrivateKey) -> str:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


def load_private_key(key_pem: str) -> PrivateKey:
    """Load a PEM private key, rejecting types the CA cannot sign for."""
    try:
        key = serialization.load_pem_private_key(key_pem.encode("ascii"), password=None)
    except (ValueError, TypeError) as exc:
        msg = f"Stored private key cannot be loaded: {exc}"
        raise IssuanceError(msg) from exc
    if not isinstance(key, (ec.EllipticCurvePrivateKey, rsa.RSAPrivateKey)):
        msg = f"Unsupported private key type {type(key).__name__}"
        raise IssuanceError(msg)
    return key


# RFC 5280 upper bound for commonName; longer names go in the SAN only.
_MAX_COMMON_NAME = 64


def build_csr(host: str, key: PrivateKey) -> x509.CertificateSigningRequest:
    """Build a CSR for *host* with a matching SAN entry.

    Hosts longer than 64 characters get an empty subject.

    Raises
    ------
    IssuanceError
        If *host* cannot be encoded in a CSR.

    """
    try:
        subject = []
        if len(host) <= _MAX_COMMON_NAME:
            subject.append(x509.NameAttribute(NameOID.COMMON_NAME, host))
        return (
            x509.CertificateSigningRequestBuilder()
            .subject_name(x509.Name(subject))
            .add_extension(
                x509.SubjectAlternativeName([x509.DNSName(host)]),
                critical=False,
            )
            .sign(key, hashes.SHA256())
        )
    except ValueError as exc:
        msg = f"Cannot build a CSR for {host}: {exc}"
        raise IssuanceError(msg) from exc


def parse_issued_chain(pem_chain: str) -> IssuedCertificate:
    """Extract the leaf metadata from a PEM certificate chain."""
    try:
        leaf = x509.load_pem_x509_certificate(pem_chain.encode("ascii"))
    except (ValueError, UnicodeEncodeError) as exc:
        msg = f"CA returned an unparseable certificate: {exc}"
        raise IssuanceError(msg) from exc

    fingerprint = hashlib.sha256(
        leaf.public_bytes(serialization.Encoding.DER),
    ).hexdigest()

    return IssuedCertificate(
        pem_chain=pem_chain,
        not_before=leaf.not_valid_before_utc,
        not_after=leaf.not_valid_after_utc,
        serial_number=format(leaf.serial_number, "x"),
        fingerprint=fingerprint,
    )
