"""Segmented microphone capture.

``AudioRecorder`` owns at most one recording handle.  ``stop_and_finalize``
invalidates the handle whatever the outcome; ``rotate`` finalises the
current segment and immediately begins the next one under a single lock so
no other start/stop can interleave.
"""

from __future__ import annotations

import asyncio
import base64
import itertools
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol
from urllib.parse import urlsplit
from urllib.request import url2pathname

LOGGER = logging.getLogger(__name__)


class RecorderError(Exception):
    """Recording could not be started or finalised."""


class PermissionDenied(RecorderError):
    """Microphone permission was refused."""


class RecorderBackend(Protocol):
    file_extension: str

    async def request_permission(self) -> bool: ...

    async def configure_mode(self) -> None: ...

    async def begin(self, path: Path) -> None: ...

    async def end(self) -> None: ...


@dataclass(frozen=True, slots=True)
class RotationResult:
    uri: str | None
    restart_error: RecorderError | None = None


def uri_to_path(uri: str) -> Path:
    """Map a ``file://`` URI (or a bare filesystem path) to a :class:`Path`."""
    parts = urlsplit(uri)
    if parts.scheme == "file":
        return Path(url2pathname(parts.path))
    if parts.scheme == "":
        return Path(uri)
    raise ValueError(f"Unsupported recording URI: {uri}")


def read_segment_base64(uri: str) -> str:
    """Read the segment at *uri* and return it base64-encoded.

    Blocking; callers on the event loop run it via ``asyncio.to_thread``.
    Raises ``OSError`` or ``ValueError``.
    """
    data = uri_to_path(uri).read_bytes()
    return base64.b64encode(data).decode("ascii")


class AudioRecorder:
    def __init__(self, backend: RecorderBackend, output_dir: str | Path) -> None:
        self._backend = backend
        self._output_dir = Path(output_dir)
        self._lock = asyncio.Lock()
        self._current: Path | None = None
        self._counter = itertools.count(1)
        self.segments_finalized = 0

    @property
    def is_active(self) -> bool:
        return self._current is not None

    @property
    def current_path(self) -> Path | None:
        return self._current

    async def start(self) -> None:
        async with self._lock:
            await self._start_locked()

    async def stop_and_finalize(self) -> str | None:
        """Finalise the active segment and return its URI.

        Returns ``None`` when nothing was recording or finalisation failed.
        """
        async with self._lock:
            return await self._stop_locked()

    async def rotate(self) -> RotationResult:
        async with self._lock:
            uri = await self._stop_locked()
            try:
                await self._start_locked()
            except RecorderError as exc:
                return RotationResult(uri=uri, restart_error=exc)
            return RotationResult(uri=uri)

    def _next_path(self) -> Path:
        stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%S%fZ")
        ext = self._backend.file_extension.lstrip(".")
        return self._output_dir / f"segment-{stamp}-{next(self._counter):04d}.{ext}"

    async def _start_locked(self) -> None:
        if self._current is not None:
            raise RecorderError("A recording is already active")
        try:
            granted = await self._backend.request_permission()
        except Exception as exc:
            raise RecorderError(f"Microphone permission request failed: {exc}") from exc
        if not granted:
            raise PermissionDenied("Microphone permission denied")
        path = self._next_path()
        try:
            await self._backend.configure_mode()
            path.parent.mkdir(parents=True, exist_ok=True)
            await self._backend.begin(path)
        except RecorderError:
            raise
        except Exception as exc:
            raise RecorderError(f"Could not start recording: {exc}") from exc
        self._current = path
        LOGGER.info("Recording started: %s", path.name)

    async def _stop_locked(self) -> str | None:
        path = self._current
        if path is None:
            LOGGER.debug("stop_and_finalize called with no active recording")
            return None
        self._current = None
        try:
            await self._backend.end()
        except Exception:
            LOGGER.warning("Failed to finalise recording %s", path.name, exc_info=True)
            return None
        if not path.is_file():
            LOGGER.warning("Recording backend produced no file at %s", path)
            return None
        self.segments_finalized += 1
        LOGGER.info("Recording finalised: %s", path.name)
        return path.resolve().as_uri()
