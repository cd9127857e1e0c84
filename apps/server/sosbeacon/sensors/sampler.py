"""Continuous motion / environmental sensor sampling.

``SensorSampler`` subscribes to the accelerometer, gyroscope and barometer
streams, keeps the latest reading of each, and feeds the fall / impact /
altitude-change detectors.  A stream that cannot be subscribed (hardware
absent, API missing) is recorded as unavailable and never blocks the other
two.
"""

from __future__ import annotations

import enum
import functools
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from ..constants import DEFAULT_SENSOR_INTERVAL_MS, FALL_THRESHOLD, IMPACT_THRESHOLD
from ..domain_models import AlertState, BarometerReading, Vector3
from ..events import EventChannel, EventKind
from .alerts import AlertBoard, Clock
from .detectors import AltitudeTracker, classify_motion

LOGGER = logging.getLogger(__name__)


class SensorKind(enum.StrEnum):
    accelerometer = "accelerometer"
    gyroscope = "gyroscope"
    barometer = "barometer"


class SensorSubscription(Protocol):
    async def close(self) -> None: ...


class SensorStream(Protocol):
    """A platform sensor feed.

    ``subscribe`` delivers :class:`Vector3` (motion sensors) or
    :class:`BarometerReading` samples to *listener* in arrival order.
    *on_ended* is called with a reason if the feed stops on its own.
    """

    kind: SensorKind

    async def subscribe(
        self,
        listener: Callable[[Any], None],
        interval_ms: int,
        *,
        on_ended: Callable[[str], None] | None = None,
    ) -> SensorSubscription: ...


@dataclass(slots=True)
class SensorStatus:
    available: bool | None = None
    error: str | None = None
    samples: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"available": self.available, "error": self.error, "samples": self.samples}


class SensorSampler:
    def __init__(
        self,
        *,
        accelerometer: SensorStream | None = None,
        gyroscope: SensorStream | None = None,
        barometer: SensorStream | None = None,
        alerts: AlertBoard | None = None,
        events: EventChannel | None = None,
        clock: Clock = time.monotonic,
        fall_threshold: float = FALL_THRESHOLD,
        impact_threshold: float = IMPACT_THRESHOLD,
    ) -> None:
        self._streams: dict[SensorKind, SensorStream | None] = {
            SensorKind.accelerometer: accelerometer,
            SensorKind.gyroscope: gyroscope,
            SensorKind.barometer: barometer,
        }
        self.alerts = alerts or AlertBoard(clock)
        self._events = events
        self.fall_threshold = float(fall_threshold)
        self.impact_threshold = float(impact_threshold)
        self.altitude = AltitudeTracker()

        self.accelerometer: Vector3 | None = None
        self.gyroscope: Vector3 | None = None
        self.barometer: BarometerReading | None = None
        self.last_magnitude: float | None = None

        self.interval_ms: int = DEFAULT_SENSOR_INTERVAL_MS
        self.status: dict[SensorKind, SensorStatus] = {kind: SensorStatus() for kind in SensorKind}
        self._subscriptions: dict[SensorKind, SensorSubscription] = {}
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    # -- lifecycle -------------------------------------------------------------

    async def start(self, interval_ms: int = DEFAULT_SENSOR_INTERVAL_MS) -> None:
        if self._running:
            LOGGER.warning("Sensor sampler already running")
            return
        self.interval_ms = max(1, int(interval_ms))
        self._running = True
        handlers: dict[SensorKind, Callable[[Any], None]] = {
            SensorKind.accelerometer: self.on_accelerometer,
            SensorKind.gyroscope: self.on_gyroscope,
            SensorKind.barometer: self.on_barometer,
        }
        for kind, stream in self._streams.items():
            status = self.status[kind]
            if stream is None:
                status.available = False
                status.error = "not present"
                continue
            try:
                self._subscriptions[kind] = await stream.subscribe(
                    handlers[kind],
                    self.interval_ms,
                    on_ended=functools.partial(self._stream_ended, kind),
                )
            except Exception as exc:
                status.available = False
                status.error = str(exc) or type(exc).__name__
                LOGGER.warning("%s unavailable; its alert will not fire: %s", kind, status.error)
                continue
            status.available = True
            status.error = None
        LOGGER.info(
            "Sensor sampler started interval_ms=%d available=%s",
            self.interval_ms,
            [k.value for k, s in self.status.items() if s.available],
        )

    async def stop(self) -> None:
        """Unsubscribe every stream.  Safe to call when never started."""
        subscriptions = list(self._subscriptions.items())
        self._subscriptions.clear()
        self._running = False
        for kind, subscription in subscriptions:
            try:
                await subscription.close()
            except Exception:
                LOGGER.warning("Error unsubscribing %s", kind, exc_info=True)
        self.altitude.reset()

    def _stream_ended(self, kind: SensorKind, reason: str) -> None:
        if not self._running:
            return
        status = self.status[kind]
        status.available = False
        status.error = reason
        LOGGER.warning("%s stream ended; its alert will not fire: %s", kind, reason)

    # -- sample handlers -------------------------------------------------------

    def on_accelerometer(self, sample: Vector3) -> None:
        self.accelerometer = sample
        self.status[SensorKind.accelerometer].samples += 1
        verdict = classify_motion(
            sample,
            fall_threshold=self.fall_threshold,
            impact_threshold=self.impact_threshold,
        )
        self.last_magnitude = verdict.magnitude
        if verdict.fall:
            self._raise("fall", self.alerts.fall, True, verdict.magnitude)
        if verdict.impact:
            self._raise("impact", self.alerts.impact, True, verdict.magnitude)

    def on_gyroscope(self, sample: Vector3) -> None:
        self.gyroscope = sample
        self.status[SensorKind.gyroscope].samples += 1

    def on_barometer(self, sample: BarometerReading) -> None:
        self.barometer = sample
        self.status[SensorKind.barometer].samples += 1
        delta = self.altitude.observe_pressure(sample.pressure_hpa)
        if delta is not None:
            self._raise("altitude_change", self.alerts.altitude_change, delta, delta)

    def _raise(self, name: str, alert: Any, value: Any, measured: float) -> None:
        was_active = alert.active
        alert.trigger(value)
        if was_active:
            return
        LOGGER.info("Alert raised: %s (measured=%.2f)", name, measured)
        if self._events is not None:
            self._events.emit(EventKind.alert, alert=name, measured=measured)

    # -- read side -------------------------------------------------------------

    def alert_state(self) -> AlertState:
        return self.alerts.snapshot()

    def status_dict(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "interval_ms": self.interval_ms,
            "sensors": {kind.value: status.to_dict() for kind, status in self.status.items()},
            "readings": {
                "accelerometer": self.accelerometer.to_dict() if self.accelerometer else None,
                "gyroscope": self.gyroscope.to_dict() if self.gyroscope else None,
                "barometer": self.barometer.to_dict() if self.barometer else None,
                "magnitude": self.last_magnitude,
                "altitude_m": self.altitude.previous_altitude_m,
            },
            "alerts": self.alert_state().to_dict(),
        }
