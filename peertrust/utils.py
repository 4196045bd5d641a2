"""Utility helpers for certificate handling and fingerprinting."""
from __future__ import annotations

import hashlib
import os
import re
from typing import Union

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import NameOID

_FINGERPRINT_RE = re.compile(r"^[0-9A-F]{2}(:[0-9A-F]{2}){31}$")


def load_cert_pem(path_or_pem: str) -> bytes:
    """Load certificate PEM from a file path or return the given PEM string as bytes.

    If the input contains 'BEGIN CERTIFICATE' it is treated as PEM content.
    Otherwise it is treated as a filesystem path and the file is read.
    """
    if "BEGIN CERTIFICATE" in path_or_pem:
        return path_or_pem.encode("utf-8")

    if os.path.isfile(path_or_pem):
        with open(path_or_pem, "rb") as f:
            return f.read()

    raise FileNotFoundError(f"Certificate PEM not found or invalid: {path_or_pem}")


def cert_pem_to_der(cert_pem: Union[str, bytes]) -> bytes:
    """Convert PEM (str or bytes) to DER bytes using cryptography.

    Raises on invalid input.
    """
    if isinstance(cert_pem, str):
        cert_pem = cert_pem.encode("utf-8")

    cert = x509.load_pem_x509_certificate(cert_pem)
    return cert.public_bytes(serialization.Encoding.DER)


def format_fingerprint(digest: bytes) -> str:
    """Render a digest as uppercase hex octets joined by colons (``AA:BB:...``)."""
    return ":".join(f"{b:02X}" for b in digest)


def fingerprint_der(der: bytes) -> str:
    """Return the SHA-256 fingerprint of raw certificate bytes.

    The format matches ``openssl x509 -noout -fingerprint -sha256`` so that
    registry files written by hand or by the provisioning tools compare equal.
    """
    return format_fingerprint(hashlib.sha256(der).digest())


def fingerprint_pem(cert_pem: Union[str, bytes]) -> str:
    """Return the SHA-256 fingerprint (uppercase, colon separated) for a PEM certificate."""
    return fingerprint_der(cert_pem_to_der(cert_pem))


def normalize_fingerprint(value: str) -> str:
    return value.strip().upper()


def looks_like_fingerprint(value: str) -> bool:
    return bool(_FINGERPRINT_RE.match(normalize_fingerprint(value)))


def common_name(cert: x509.Certificate) -> str:
    """Subject common name of ``cert``; the last CN wins, empty if there is none."""
    attrs = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not attrs:
        return ""
    value = attrs[-1].value
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    return value
