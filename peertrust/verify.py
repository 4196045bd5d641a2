"""Client certificate verification against the known-peers registry.

Self-signed clients cannot be validated against a CA, so the server checks
the leaf certificate's common name and SHA-256 fingerprint instead. Nothing
here touches the network or the filesystem.
"""
from __future__ import annotations

import logging
from typing import Callable, Sequence

from cryptography import x509

from .errors import (
    CredentialAbsent,
    CredentialUnreadable,
    PeerCredentialMismatch,
    PeerNotAuthorized,
)
from .store import KnownPeers
from .utils import common_name, fingerprint_der

logger = logging.getLogger(__name__)

# (raw DER certificates presented by the peer) -> authorized identity name
Verifier = Callable[[Sequence[bytes]], str]


def verify_peer_certificate(raw_certs: Sequence[bytes], known_peers: KnownPeers) -> str:
    """Check the peer's leaf certificate and return its identity name.

    Only ``raw_certs[0]`` is looked at; any issuer certificates sent along
    with it are ignored.

    :raises CredentialAbsent: no certificate was presented.
    :raises CredentialUnreadable: the leaf is not a valid X.509 certificate.
    :raises PeerNotAuthorized: the common name is not in the registry.
    :raises PeerCredentialMismatch: the name is known but the fingerprint differs.
    """
    if not raw_certs:
        logger.warning("Authentication failed: no client certificate provided.")
        raise CredentialAbsent()

    leaf = bytes(raw_certs[0])
    try:
        cert = x509.load_der_x509_certificate(leaf)
    except ValueError as exc:
        logger.warning("Authentication failed: could not parse client certificate: %s", exc)
        raise CredentialUnreadable(exc) from exc

    cn = common_name(cert)
    fingerprint = fingerprint_der(leaf)
    logger.info("Verifying client: CN='%s', Fingerprint='%s'", cn, fingerprint)

    expected = known_peers.expected_fingerprint(cn)
    if expected is None:
        logger.warning("Authentication failed: Client CN '%s' not found in known clients.", cn)
        raise PeerNotAuthorized(cn)

    if expected != fingerprint:
        logger.error(
            "Authentication failed: Fingerprint mismatch for CN '%s'. Expected '%s', Got '%s'",
            cn, expected, fingerprint,
        )
        raise PeerCredentialMismatch(cn, expected=expected, presented=fingerprint)

    logger.info("Client authenticated successfully via fingerprint: CN='%s'", cn)
    return cn


class PeerVerifier:
    """Callable wrapper binding a registry, suitable for injection into a TLS policy."""

    def __init__(self, known_peers: KnownPeers):
        self.known_peers = known_peers

    def __call__(self, raw_certs: Sequence[bytes]) -> str:
        return verify_peer_certificate(raw_certs, self.known_peers)
