"""Record of remote files that have already been synchronized."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .models import RemoteFile

STATE_DELIMITER = ","


@dataclass(frozen=True)
class ProcessedFiles:
    """Fingerprints of handled files.

    The set only grows: :meth:`mark_done` returns a new state and nothing
    removes entries. A file that is deleted and uploaded again gets a new
    fingerprint and is therefore processed again.
    """

    fingerprints: tuple[str, ...] = ()

    def __contains__(self, item: object) -> bool:
        if isinstance(item, RemoteFile):
            item = item.fingerprint
        return item in self.fingerprints

    def __len__(self) -> int:
        return len(self.fingerprints)

    def unprocessed(self, candidates: Iterable[RemoteFile]) -> list[RemoteFile]:
        """Return candidates not yet handled, oldest first."""
        known = set(self.fingerprints)
        pending: dict[str, RemoteFile] = {}
        for candidate in candidates:
            if candidate.fingerprint not in known:
                pending.setdefault(candidate.fingerprint, candidate)
        return sorted(pending.values(), key=lambda f: (f.last_modified, f.name))

    def mark_done(self, file: RemoteFile) -> ProcessedFiles:
        if file.fingerprint in self.fingerprints:
            return self
        return ProcessedFiles(self.fingerprints + (file.fingerprint,))

    def to_text(self) -> str:
        return STATE_DELIMITER.join(self.fingerprints)

    @classmethod
    def from_text(cls, text: str) -> ProcessedFiles:
        """Parse the persisted blob; an empty blob is the empty state."""
        seen: dict[str, None] = {}
        for raw in text.split(STATE_DELIMITER):
            fingerprint = raw.strip()
            if fingerprint:
                seen.setdefault(fingerprint)
        return cls(tuple(seen))
