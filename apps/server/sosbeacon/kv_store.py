"""Key-value persistence backends.

One string value per key.  ``JsonFileBackend`` keeps one file per key and
writes atomically (write-to-temp + ``os.replace``) so a crash mid-write never
corrupts the previous value.  ``InMemoryBackend`` backs the tests.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Protocol

LOGGER = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^[A-Za-z0-9._-]+$")


class PersistenceBackend(Protocol):
    def read(self, key: str) -> str | None: ...

    def write(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryBackend:
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.values: dict[str, str] = dict(initial or {})
        self.write_count = 0

    def read(self, key: str) -> str | None:
        return self.values.get(key)

    def write(self, key: str, value: str) -> None:
        self.values[key] = value
        self.write_count += 1

    def delete(self, key: str) -> None:
        self.values.pop(key, None)


class JsonFileBackend:
    """Store each key as ``<directory>/<key>.json``."""

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, key: str) -> Path:
        if not _KEY_RE.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self._directory / f"{key}.json"

    def read(self, key: str) -> str | None:
        path = self.path_for(key)
        if not path.is_file():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as exc:
            LOGGER.warning("Cannot read %s: %s", path, exc)
            return None

    def write(self, key: str, value: str) -> None:
        """Persist *value* atomically.  ``OSError`` propagates to the caller."""
        path = self.path_for(key)
        tmp: str | None = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=f".{key}_", suffix=".tmp")
            try:
                os.write(fd, value.encode("utf-8"))
                os.fsync(fd)
            finally:
                os.close(fd)
            os.replace(tmp, str(path))
            tmp = None
        finally:
            if tmp is not None:
                try:
                    os.unlink(tmp)
                except OSError:
                    pass

    def delete(self, key: str) -> None:
        try:
            self.path_for(key).unlink()
        except FileNotFoundError:
            pass
