"""Tests for acmegate.issuer.cert_utils: CSR construction."""

from __future__ import annotations

import pytest
from cryptography import x509
from cryptography.x509.oid import NameOID

from acmegate.issuer.base import IssuanceError
from acmegate.issuer.cert_utils import build_csr, generate_private_key


@pytest.fixture(scope="module")
def key():
    return generate_private_key("ec")


def _sans(csr):
    ext = csr.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    return ext.value.get_values_for_type(x509.DNSName)


class TestBuildCsr:
    def test_common_name_and_san(self, key):
        csr = build_csr("example.com", key)
        cn = csr.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
        assert [a.value for a in cn] == ["example.com"]
        assert _sans(csr) == ["example.com"]

    def test_long_host_is_san_only(self, key):
        host = "a" * 60 + ".example.com"
        csr = build_csr(host, key)
        assert len(csr.subject) == 0
        assert _sans(csr) == [host]
        assert csr.is_signature_valid

    def test_unencodable_host(self, key):
        with pytest.raises(IssuanceError, match="Cannot build a CSR"):
            build_csr("", key)
