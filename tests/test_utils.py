import hashlib
import re

from peertrust.utils import (
    cert_pem_to_der,
    common_name,
    fingerprint_der,
    fingerprint_pem,
    format_fingerprint,
    looks_like_fingerprint,
    normalize_fingerprint,
)
from cryptography import x509

CANONICAL = re.compile(r"^[0-9A-F]{2}(:[0-9A-F]{2})*$")


def test_fingerprint_matches_direct_sha256(client_identity):
    pem, _ = client_identity
    der = cert_pem_to_der(pem)

    expected = ":".join(f"{b:02X}" for b in hashlib.sha256(der).digest())
    assert fingerprint_pem(pem) == expected
    assert fingerprint_der(der) == expected


def test_fingerprint_is_deterministic_and_canonical():
    for data in (b"", b"\x00", b"not really a certificate", bytes(range(256)) * 4):
        first = fingerprint_der(data)
        assert first == fingerprint_der(data)
        assert CANONICAL.match(first)
        assert len(first.split(":")) == 32
        assert len(first) == 95


def test_format_fingerprint():
    assert format_fingerprint(b"\xaa\x0b\xff") == "AA:0B:FF"


def test_normalize_and_syntax_check():
    fp = fingerprint_der(b"x")
    assert normalize_fingerprint("  " + fp.lower() + "\n") == fp
    assert looks_like_fingerprint(fp.lower())
    assert not looks_like_fingerprint("AA:BB")
    assert not looks_like_fingerprint("ZZ" + fp[2:])


def test_common_name(client_identity):
    cert = x509.load_pem_x509_certificate(client_identity[0])
    assert common_name(cert) == "my_secure_client"
