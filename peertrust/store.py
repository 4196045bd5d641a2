"""Known-peers registry: the allow-list of client identities and fingerprints.

The registry is read from a plain text file, one entry per line::

    # comment
    my_secure_client AA:11:...:FF

It is loaded once at server start-up and never modified afterwards, so it can
be shared by every connection thread without locking.
"""
from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from .errors import ConfigLoadError, MalformedRegistryLine
from .utils import looks_like_fingerprint, normalize_fingerprint

logger = logging.getLogger(__name__)


class KnownPeers(Mapping[str, str]):
    """Read-only mapping of identity name to expected fingerprint."""

    def __init__(
        self,
        entries: Optional[Mapping[str, str]] = None,
        source: str = "<memory>",
        warnings: Iterable[MalformedRegistryLine] = (),
    ):
        self._entries = MappingProxyType(
            {name: normalize_fingerprint(fp) for name, fp in (entries or {}).items()}
        )
        self.source = source
        self.warnings: Tuple[MalformedRegistryLine, ...] = tuple(warnings)

    def __getitem__(self, name: str) -> str:
        return self._entries[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"KnownPeers(source={self.source!r}, entries={len(self)})"

    def expected_fingerprint(self, name: str) -> Optional[str]:
        return self._entries.get(name)

    @classmethod
    def from_lines(cls, lines: Iterable[str], source: str = "<memory>") -> "KnownPeers":
        """Build a registry from text lines.

        Bad lines are skipped and recorded in ``warnings``; they never abort
        the load. A name that appears twice keeps the later fingerprint.
        """
        entries: Dict[str, str] = {}
        skipped: List[MalformedRegistryLine] = []

        for line_number, raw in enumerate(lines, start=1):
            line = raw.strip()
            if not line or line.startswith("#"):
                continue

            fields = line.split()
            if len(fields) != 2:
                problem = MalformedRegistryLine(
                    source, line_number, line,
                    "format should be '<common_name> <fingerprint>'",
                )
                logger.warning("Skipping invalid line %d in %s: %s", line_number, source, problem.reason)
                skipped.append(problem)
                continue

            name, fingerprint = fields[0], normalize_fingerprint(fields[1])
            if not looks_like_fingerprint(fingerprint):
                # Kept as an opaque value; it will simply never match.
                logger.warning(
                    "Line %d in %s: fingerprint for '%s' is not a SHA-256 fingerprint",
                    line_number, source, name,
                )
            if name in entries:
                logger.debug("Line %d in %s overrides earlier entry for '%s'", line_number, source, name)
            entries[name] = fingerprint

        if not entries:
            logger.warning("No valid client entries found in %s", source)

        return cls(entries, source=source, warnings=skipped)

    @classmethod
    def load(cls, path: str) -> "KnownPeers":
        """Load the registry file at ``path``.

        :raises ConfigLoadError: if the file cannot be opened, read or decoded.
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                lines = f.readlines()
        except (OSError, UnicodeDecodeError) as exc:
            raise ConfigLoadError(path, exc) from exc

        return cls.from_lines(lines, source=str(path))
