"""Trust between self-signed TLS peers: known-client fingerprints and server pinning."""

from .errors import (
    ConfigLoadError,
    CredentialAbsent,
    CredentialUnreadable,
    MalformedRegistryLine,
    PeerCredentialMismatch,
    PeerNotAuthorized,
    PeerVerificationError,
    TrustError,
)
from .store import KnownPeers
from .tlsconfig import build_server_context, create_client_context, create_server_context
from .utils import fingerprint_der, fingerprint_pem
from .verify import PeerVerifier, verify_peer_certificate

__all__ = [
    "ConfigLoadError",
    "CredentialAbsent",
    "CredentialUnreadable",
    "MalformedRegistryLine",
    "PeerCredentialMismatch",
    "PeerNotAuthorized",
    "PeerVerificationError",
    "TrustError",
    "KnownPeers",
    "build_server_context",
    "create_client_context",
    "create_server_context",
    "fingerprint_der",
    "fingerprint_pem",
    "PeerVerifier",
    "verify_peer_certificate",
]
