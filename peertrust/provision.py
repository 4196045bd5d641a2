"""Offline provisioning of self-signed identities and the known-clients file."""
from __future__ import annotations

import ipaddress
import os
import shutil
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, Sequence, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from .utils import fingerprint_pem


def generate_self_signed(
    common_name: str,
    org_unit: str = "Client",
    dns_names: Sequence[str] = (),
    ip_addresses: Sequence[str] = (),
    days: int = 365,
) -> Tuple[bytes, bytes]:
    """Create an RSA-2048 key and a self-signed certificate for it.

    :param common_name: subject CN; this is the identity the server checks.
    :param org_unit: subject OU.
    :param dns_names: DNS subjectAltName entries (servers need these).
    :param ip_addresses: IP subjectAltName entries.
    :param days: validity period in days.
    :return: (certificate PEM, private key PEM)
    """
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([
        x509.NameAttribute(NameOID.COUNTRY_NAME, u"US"),
        x509.NameAttribute(NameOID.STATE_OR_PROVINCE_NAME, u"California"),
        x509.NameAttribute(NameOID.LOCALITY_NAME, u"SanFrancisco"),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, u"MyOrg"),
        x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, org_unit),
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
    ])
    now = datetime.now(timezone.utc)
    ski = x509.SubjectKeyIdentifier.from_public_key(key.public_key())

    builder = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=1))
        .not_valid_after(now + timedelta(days=days))
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(ski, critical=False)
        .add_extension(x509.AuthorityKeyIdentifier.from_issuer_subject_key_identifier(ski), critical=False)
    )

    alt_names = [x509.DNSName(d) for d in dns_names]
    alt_names += [x509.IPAddress(ipaddress.ip_address(ip)) for ip in ip_addresses]
    if alt_names:
        builder = builder.add_extension(x509.SubjectAlternativeName(alt_names), critical=False)

    cert = builder.sign(key, hashes.SHA256())

    cert_pem = cert.public_bytes(serialization.Encoding.PEM)
    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.NoEncryption(),
    )
    return cert_pem, key_pem


def write_identity(outdir: str, basename: str, cert_pem: bytes, key_pem: bytes) -> Tuple[str, str]:
    """Write ``<basename>.crt`` and ``<basename>.key`` into ``outdir``."""
    cert_p = os.path.join(outdir, f"{basename}.crt")
    key_p = os.path.join(outdir, f"{basename}.key")
    with open(cert_p, "wb") as f:
        f.write(cert_pem)
    with open(key_p, "wb") as f:
        f.write(key_pem)
    return cert_p, key_p


def known_client_line(common_name: str, cert_pem: bytes) -> str:
    return f"{common_name} {fingerprint_pem(cert_pem)}"


def write_known_clients(path: str, lines: Iterable[str]) -> None:
    with open(path, "w", encoding="utf-8") as f:
        for line in lines:
            f.write(line + "\n")


def make_selfsigned_certs(
    outdir: str,
    server_cn: str = "localhost",
    client_cn: str = "my_secure_client",
) -> Dict[str, str]:
    """Generate server and client identities plus ``knownClients.txt``.

    Any previous contents of ``outdir`` are removed. Key files are left
    readable by the owner only.

    :return: paths keyed by ``server_cert``, ``server_key``, ``client_cert``,
        ``client_key`` and ``known_clients``.
    """
    shutil.rmtree(outdir, ignore_errors=True)
    os.makedirs(outdir)

    server_cert, server_key = generate_self_signed(
        server_cn, org_unit="Server", dns_names=["localhost"], ip_addresses=["127.0.0.1"],
    )
    client_cert, client_key = generate_self_signed(client_cn, org_unit="Client")

    server_cert_p, server_key_p = write_identity(outdir, "server", server_cert, server_key)
    client_cert_p, client_key_p = write_identity(outdir, "client", client_cert, client_key)

    known_clients_p = os.path.join(outdir, "knownClients.txt")
    write_known_clients(known_clients_p, [known_client_line(client_cn, client_cert)])

    for p in (server_key_p, client_key_p):
        os.chmod(p, 0o400)

    return {
        "server_cert": server_cert_p,
        "server_key": server_key_p,
        "client_cert": client_cert_p,
        "client_key": client_key_p,
        "known_clients": known_clients_p,
    }
