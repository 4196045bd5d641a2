"""TLS policy builders for the server and client roles.

Server: a client certificate is required but no CA is configured; OpenSSL's
chain verdict is ignored and the leaf is checked by a ``Verifier`` instead.

Client: the server's own self-signed certificate is loaded as the one and only
trust anchor (certificate pinning). Any other certificate fails the handshake.
"""
from __future__ import annotations

import logging
import os
import ssl
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from OpenSSL import SSL

from .errors import ConfigLoadError, PeerVerificationError
from .store import KnownPeers
from .verify import PeerVerifier, Verifier

logger = logging.getLogger(__name__)


def _require_file(path: str, what: str) -> None:
    if not os.path.isfile(path):
        raise ConfigLoadError(path, f"{what} file not found")


def load_pinned_certificate(certfile: str) -> str:
    """Read the PEM file holding the single server certificate to trust.

    :raises ConfigLoadError: unreadable file, no certificate, or more than one.
    """
    try:
        with open(certfile, "rb") as f:
            data = f.read()
        certs = x509.load_pem_x509_certificates(data)
    except (OSError, ValueError) as exc:
        raise ConfigLoadError(certfile, exc) from exc

    if len(certs) != 1:
        raise ConfigLoadError(certfile, f"expected exactly one certificate to pin, found {len(certs)}")

    return certs[0].public_bytes(serialization.Encoding.PEM).decode("ascii")


def _make_verify_callback(verifier: Verifier):
    def callback(conn, cert, errnum, depth, preverify_ok):
        # Only the leaf is authoritative; issuer certificates are not trusted or checked.
        if depth != 0:
            return True
        # OpenSSL may call back more than once for the leaf (one call per chain error).
        if conn.get_app_data() is not None:
            return True

        raw = cert.to_cryptography().public_bytes(serialization.Encoding.DER)
        try:
            identity = verifier([raw])
        except PeerVerificationError as exc:
            logger.warning("Rejecting client handshake: %s", exc)
            return False

        conn.set_app_data(identity)
        return True

    return callback


def build_server_context(
    known_peers: KnownPeers,
    certfile: str,
    keyfile: str,
    verifier: Optional[Verifier] = None,
) -> SSL.Context:
    """Create the server context that authorizes clients by CN and fingerprint.

    :param known_peers: registry of authorized clients.
    :param certfile: server certificate (PEM).
    :param keyfile: server private key (PEM).
    :param verifier: replaces the default ``PeerVerifier(known_peers)``.
    :raises ConfigLoadError: if the server certificate or key cannot be used.
    """
    if verifier is None:
        verifier = PeerVerifier(known_peers)

    _require_file(certfile, "server certificate")
    _require_file(keyfile, "server private key")

    ctx = SSL.Context(SSL.TLS_SERVER_METHOD)
    ctx.set_min_proto_version(SSL.TLS1_2_VERSION)

    try:
        ctx.use_certificate_chain_file(certfile)
    except SSL.Error as exc:
        raise ConfigLoadError(certfile, exc) from exc
    try:
        ctx.use_privatekey_file(keyfile)
        ctx.check_privatekey()
    except SSL.Error as exc:
        raise ConfigLoadError(keyfile, exc) from exc

    # Require a cert, but don't verify it against CAs: none are loaded.
    ctx.set_verify(SSL.VERIFY_PEER | SSL.VERIFY_FAIL_IF_NO_PEER_CERT, _make_verify_callback(verifier))

    # Resumed sessions skip the verify callback, so every connection gets a full handshake.
    ctx.set_session_cache_mode(SSL.SESS_CACHE_OFF)
    ctx.set_options(SSL.OP_NO_TICKET)
    ctx.set_session_id(b"peertrust")
    return ctx


def create_server_context(known_clients_file: str, certfile: str, keyfile: str) -> SSL.Context:
    """Load the known-clients file and build the server context from it."""
    known_peers = KnownPeers.load(known_clients_file)
    logger.info("Loaded %d known clients for verification.", len(known_peers))
    return build_server_context(known_peers, certfile, keyfile)


def create_client_context(server_certfile: str, client_certfile: str, client_keyfile: str) -> ssl.SSLContext:
    """Create the client context: own identity for mTLS, server certificate pinned.

    The trust store holds nothing but ``server_certfile``; system CAs are
    never loaded. Hostname checking still applies against that certificate.
    """
    pinned_pem = load_pinned_certificate(server_certfile)

    _require_file(client_certfile, "client certificate")
    _require_file(client_keyfile, "client private key")

    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    ctx.minimum_version = ssl.TLSVersion.TLSv1_2
    try:
        ctx.load_cert_chain(client_certfile, client_keyfile)
    except (OSError, ssl.SSLError) as exc:
        raise ConfigLoadError(client_certfile, exc) from exc

    ctx.load_verify_locations(cadata=pinned_pem)
    return ctx


def peer_identity(connection: SSL.Connection) -> Optional[str]:
    """Identity accepted by the verifier for ``connection``, or None before the handshake."""
    return connection.get_app_data()
