"""Error taxonomy for self-signed peer trust.

Startup problems (``ConfigLoadError``) are fatal for the role being started.
``PeerVerificationError`` subclasses are fatal for one connection only.
"""
from __future__ import annotations

from typing import Optional


class TrustError(Exception):
    pass


class ConfigLoadError(TrustError):
    """A registry, certificate or key file could not be read or parsed."""

    def __init__(self, path: str, cause: object):
        self.path = str(path)
        self.cause = cause
        super().__init__(f"failed to load {self.path}: {cause}")


class MalformedRegistryLine(TrustError):
    """A known-peers line that was skipped. Recorded, never raised by the loader."""

    def __init__(self, source: str, line_number: int, line: str, reason: str):
        self.source = source
        self.line_number = line_number
        self.line = line
        self.reason = reason
        super().__init__(f"{source}:{line_number}: {reason}")


class PeerVerificationError(TrustError):
    pass


class CredentialAbsent(PeerVerificationError):
    def __init__(self):
        super().__init__("no client certificate presented")


class CredentialUnreadable(PeerVerificationError):
    def __init__(self, cause: object):
        self.cause = cause
        super().__init__(f"failed to parse client certificate: {cause}")


class PeerNotAuthorized(PeerVerificationError):
    def __init__(self, identity: str):
        self.identity = identity
        super().__init__(f"client CN '{identity}' not authorized")


class PeerCredentialMismatch(PeerVerificationError):
    def __init__(self, identity: str, expected: Optional[str] = None, presented: Optional[str] = None):
        self.identity = identity
        self.expected = expected
        self.presented = presented
        super().__init__(f"client fingerprint mismatch for CN '{identity}'")
