"""Persisted list of finalised recording segments.

The list is stored as one JSON array under a fixed key and rewritten
wholesale on every append / delete.  Corrupt entries are skipped on load.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from threading import RLock

from .audio_recorder import uri_to_path
from .constants import RECORDINGS_KEY
from .domain_models import RecordingSegment
from .json_utils import safe_json_dumps, safe_json_loads
from .kv_store import PersistenceBackend

LOGGER = logging.getLogger(__name__)

FileRemover = Callable[[str], None]


def remove_segment_file(uri: str) -> None:
    """Delete the audio file behind *uri*; a missing file is only logged."""
    path: Path = uri_to_path(uri)
    try:
        path.unlink()
    except FileNotFoundError:
        LOGGER.info("Recording file already gone: %s", path)


class RecordingStore:
    """Append / delete may run on different threads; changes are serialised."""

    def __init__(
        self,
        backend: PersistenceBackend,
        *,
        key: str = RECORDINGS_KEY,
        file_remover: FileRemover | None = remove_segment_file,
    ) -> None:
        self._backend = backend
        self._key = key
        self._file_remover = file_remover
        self._lock = RLock()
        self._entries: list[RecordingSegment] = []
        self._loaded = False

    def load(self) -> list[RecordingSegment]:
        with self._lock:
            data = safe_json_loads(self._backend.read(self._key), context="recordings list")
            entries: list[RecordingSegment] = []
            if data is not None and not isinstance(data, list):
                LOGGER.warning("Recordings list is not a JSON array; ignoring it")
                data = None
            for item in data or []:
                if not isinstance(item, dict):
                    LOGGER.warning("Skipping malformed recording entry: %r", item)
                    continue
                try:
                    entries.append(RecordingSegment.from_dict(item))
                except ValueError as exc:
                    LOGGER.warning("Skipping malformed recording entry: %s", exc)
            self._entries = entries
            self._loaded = True
            return list(entries)

    def entries(self) -> list[RecordingSegment]:
        with self._lock:
            if not self._loaded:
                self.load()
            return list(self._entries)

    def __len__(self) -> int:
        return len(self.entries())

    def append(self, segment: RecordingSegment) -> None:
        """Add *segment* and rewrite the whole list.

        A write failure is logged; the entry stays in memory so the next
        successful write persists it.
        """
        with self._lock:
            if not self._loaded:
                self.load()
            self._entries.append(segment)
            self._persist()

    def remove(self, timestamp: str) -> bool:
        """Drop the entry recorded at *timestamp* and delete its file."""
        with self._lock:
            if not self._loaded:
                self.load()
            removed = [e for e in self._entries if e.timestamp == timestamp]
            if not removed:
                return False
            self._entries = [e for e in self._entries if e.timestamp != timestamp]
            self._persist()
        if self._file_remover is not None:
            for entry in removed:
                try:
                    self._file_remover(entry.uri)
                except OSError as exc:
                    LOGGER.warning("Could not delete recording file %s: %s", entry.uri, exc)
        return True

    def _persist(self) -> None:
        # Caller holds the lock; payload and write must see the same list.
        payload = safe_json_dumps([e.to_dict() for e in self._entries])
        try:
            self._backend.write(self._key, payload)
        except OSError as exc:
            LOGGER.error("Failed to persist recordings list (%d entries): %s", len(self._entries), exc)
