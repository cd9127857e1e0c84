"""Emergency session state machine: Idle -> Active -> Idle.

While active, a rotation task finalises the current audio segment every
``rotation_interval_s`` (strictly periodic from session start), appends it
to the recording store and uploads it together with a fresh device-context
snapshot.  Uploads run as tracked background tasks so a slow network never
delays the next rotation.

``stop`` first retires the rotation task (waiting for an in-flight tick,
never interrupting it), then finalises and uploads the last segment.  No
rotation or upload is started after ``stop`` returns.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from .audio_recorder import AudioRecorder, PermissionDenied, RecorderError, read_segment_base64
from .backend_client import UploadResult
from .constants import DEFAULT_ROTATION_INTERVAL_S, DEFAULT_UPLOAD_DRAIN_TIMEOUT_S
from .context_probe import ContextProbe
from .domain_models import AlertState, EmergencyBundle, RecordingSegment
from .events import EventChannel, EventKind, NoticeLevel
from .json_utils import utc_now_iso
from .recording_store import RecordingStore

LOGGER = logging.getLogger(__name__)


class SessionState(enum.StrEnum):
    idle = "idle"
    active = "active"


class EmergencyBackend(Protocol):
    async def has_emergency_contacts(self) -> bool: ...

    async def post_emergency(self, bundle: EmergencyBundle) -> UploadResult: ...


@dataclass(frozen=True, slots=True)
class StartResult:
    started: bool
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class StopResult:
    stopped: bool
    reason: str | None = None
    final_segment: RecordingSegment | None = None


class EmergencySession:
    def __init__(
        self,
        *,
        recorder: AudioRecorder,
        store: RecordingStore,
        backend: EmergencyBackend,
        probe: ContextProbe,
        alerts: Callable[[], AlertState],
        events: EventChannel,
        rotation_interval_s: float = DEFAULT_ROTATION_INTERVAL_S,
        upload_drain_timeout_s: float = DEFAULT_UPLOAD_DRAIN_TIMEOUT_S,
        encoder: Callable[[str], str] = read_segment_base64,
    ) -> None:
        if rotation_interval_s <= 0:
            raise ValueError("rotation_interval_s must be > 0")
        self._recorder = recorder
        self._store = store
        self._backend = backend
        self._probe = probe
        self._alerts = alerts
        self._events = events
        self.rotation_interval_s = float(rotation_interval_s)
        self.upload_drain_timeout_s = max(0.0, float(upload_drain_timeout_s))
        self._encoder = encoder

        self._state = SessionState.idle
        self._transition_lock = asyncio.Lock()
        self._rotation_task: asyncio.Task[None] | None = None
        self._tick_idle = asyncio.Event()
        self._tick_idle.set()
        self._stopping = False
        self._started_mono_s: float | None = None
        self.started_at: str | None = None
        self._uploads: set[asyncio.Task[None]] = set()

        self.rotations = 0
        self.segments_recorded = 0
        self.uploads_ok = 0
        self.uploads_failed = 0
        self.last_bundle: dict[str, Any] | None = None
        self.last_upload: dict[str, Any] | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._state is SessionState.active

    @property
    def pending_uploads(self) -> int:
        return len(self._uploads)

    # -- transitions -----------------------------------------------------------

    async def start(self) -> StartResult:
        async with self._transition_lock:
            if self._state is SessionState.active:
                return StartResult(started=False, reason="already_active")

            try:
                has_contacts = await self._backend.has_emergency_contacts()
            except Exception as exc:
                LOGGER.warning("Emergency contacts check failed: %s", exc)
                self._events.notify(
                    "contacts_unavailable",
                    f"Could not verify your emergency contacts: {exc}",
                )
                return StartResult(started=False, reason="contacts_unavailable")
            if not has_contacts:
                self._events.notify(
                    "no_contacts",
                    "Add at least one emergency contact before starting an emergency session.",
                    action="add_contact",
                )
                return StartResult(started=False, reason="no_contacts")

            try:
                await self._recorder.start()
            except PermissionDenied:
                self._events.notify(
                    "permission_denied",
                    "Microphone permission is required to record emergency audio.",
                    action="open_settings",
                )
                return StartResult(started=False, reason="permission_denied")
            except RecorderError as exc:
                LOGGER.error("Could not start recording: %s", exc)
                self._events.notify("recorder_error", f"Could not start recording: {exc}")
                return StartResult(started=False, reason="recorder_error")

            self._stopping = False
            self._started_mono_s = asyncio.get_running_loop().time()
            self.started_at = utc_now_iso()
            self._state = SessionState.active
            self._rotation_task = asyncio.create_task(
                self._rotation_loop(self._started_mono_s), name="sosbeacon-rotation"
            )
            LOGGER.info("Emergency session started (rotation every %.1fs)", self.rotation_interval_s)
            self._events.emit(EventKind.state_changed, state=self._state.value)
            return StartResult(started=True)

    async def stop(self, *, drain_uploads: bool = True) -> StopResult:
        async with self._transition_lock:
            if self._state is not SessionState.active:
                return StopResult(stopped=False, reason="not_active")

            await self._retire_rotation()
            had_recording = self._recorder.is_active
            uri = await self._recorder.stop_and_finalize()
            segment: RecordingSegment | None = None
            if uri is not None:
                segment = self._record_segment(uri)
            elif had_recording:
                self._events.notify(
                    "segment_lost",
                    "The final recording segment could not be saved.",
                    level=NoticeLevel.warning,
                )

            self._state = SessionState.idle
            self._started_mono_s = None
            LOGGER.info("Emergency session stopped after %d rotation(s)", self.rotations)
            self._events.emit(EventKind.state_changed, state=self._state.value)

        if drain_uploads:
            await self._drain_uploads(self.upload_drain_timeout_s)
        return StopResult(stopped=True, final_segment=segment)

    async def close(self) -> None:
        """Teardown path: stop if active, then drop any remaining uploads."""
        if self._state is SessionState.active:
            await self.stop()
        await self._drain_uploads(0.0)

    async def _retire_rotation(self) -> None:
        self._stopping = True
        task = self._rotation_task
        self._rotation_task = None
        if task is None:
            return
        await self._tick_idle.wait()
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    # -- rotation --------------------------------------------------------------

    async def _rotation_loop(self, started_mono_s: float) -> None:
        loop = asyncio.get_running_loop()
        interval = self.rotation_interval_s
        next_tick = started_mono_s + interval
        while True:
            delay = next_tick - loop.time()
            if delay > 0:
                await asyncio.sleep(delay)
            if self._stopping:
                return
            self._tick_idle.clear()
            try:
                await self._rotate_once()
            except Exception:
                LOGGER.error("Rotation tick failed", exc_info=True)
            finally:
                self._tick_idle.set()
            next_tick += interval
            behind = loop.time() - next_tick
            if behind >= 0:
                skipped = int(behind // interval) + 1
                LOGGER.warning("Rotation fell behind; skipping %d tick(s)", skipped)
                next_tick += skipped * interval

    async def _rotate_once(self) -> None:
        if not self._recorder.is_active:
            # Previous restart failed; try again without finalising anything.
            await self._restart_recorder()
            return
        result = await self._recorder.rotate()
        self.rotations += 1
        if result.uri is not None:
            self._record_segment(result.uri)
        else:
            self._events.notify(
                "segment_lost",
                "A recording segment could not be saved.",
                level=NoticeLevel.warning,
            )
        if result.restart_error is not None:
            LOGGER.warning("Recorder restart failed, retrying once: %s", result.restart_error)
            await self._restart_recorder()

    async def _restart_recorder(self) -> bool:
        try:
            await self._recorder.start()
        except RecorderError as exc:
            LOGGER.error("Recorder restart failed: %s", exc)
            self._events.notify("recorder_error", f"Recording could not be restarted: {exc}")
            return False
        LOGGER.info("Recorder restarted")
        return True

    def _record_segment(self, uri: str) -> RecordingSegment:
        segment = RecordingSegment(uri=uri, timestamp=utc_now_iso())
        self._store.append(segment)
        self.segments_recorded += 1
        self._events.emit(EventKind.segment_recorded, segment=segment.to_dict())
        task = asyncio.create_task(self._run_upload(uri), name="sosbeacon-upload")
        self._uploads.add(task)
        task.add_done_callback(self._uploads.discard)
        return segment

    # -- uploads ---------------------------------------------------------------

    async def _run_upload(self, uri: str) -> None:
        try:
            await self.upload_bundle(uri)
        except asyncio.CancelledError:
            LOGGER.warning("Upload of %s cancelled", uri)
            raise
        except Exception:
            LOGGER.error("Upload of %s crashed", uri, exc_info=True)

    async def upload_bundle(self, uri: str | None) -> UploadResult:
        """Refresh context, build the bundle for *uri* and POST it.

        An unreadable recording yields a bundle with ``recording=None``; the
        POST still happens.
        """
        context = await self._probe.refresh_all()
        alerts = self._alerts()
        recording: str | None = None
        if uri is not None:
            try:
                recording = await asyncio.to_thread(self._encoder, uri)
            except (OSError, ValueError) as exc:
                LOGGER.warning("Could not encode recording %s: %s", uri, exc)
                self._events.notify(
                    "encoding_failed",
                    "The recording could not be attached; sending the alert without audio.",
                    level=NoticeLevel.warning,
                )

        bundle = EmergencyBundle.build(context, alerts, recording)
        result = await self._backend.post_emergency(bundle)
        self.last_bundle = bundle.summary()
        self.last_upload = {"uri": uri, "at": utc_now_iso(), **result.to_dict()}
        if result.ok:
            self.uploads_ok += 1
        else:
            self.uploads_failed += 1
            self._events.notify("upload_failed", f"Emergency upload failed: {result.error}")
        self._events.emit(EventKind.upload_finished, uri=uri, ok=result.ok, status=result.status)
        return result

    async def _drain_uploads(self, timeout_s: float) -> None:
        pending = set(self._uploads)
        if not pending:
            return
        if timeout_s > 0:
            _, pending = await asyncio.wait(pending, timeout=timeout_s)
        if pending:
            LOGGER.warning("Cancelling %d unfinished upload(s)", len(pending))
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    # -- read side -------------------------------------------------------------

    def projection(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "isRecording": self.is_recording,
            "startedAt": self.started_at if self.is_recording else None,
            "rotationIntervalS": self.rotation_interval_s,
            "recorderActive": self._recorder.is_active,
            "rotations": self.rotations,
            "segmentsRecorded": self.segments_recorded,
            "pendingUploads": self.pending_uploads,
            "uploadsOk": self.uploads_ok,
            "uploadsFailed": self.uploads_failed,
            "lastBundle": self.last_bundle,
            "lastUpload": self.last_upload,
        }
