"""Synthetic device for development and demos.

Sensor streams are numpy-generated at the requested interval: gravity plus
noise on the accelerometer, with an optional periodic fall spike; a slowly
drifting barometer with optional periodic altitude steps.  The microphone
writes 16-bit mono WAV files of low-level noise so segments have real bytes
to encode and upload.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
import wave
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np

from ..domain_models import (
    BarometerReading,
    BatteryState,
    BatteryStatus,
    Coordinates,
    NetworkState,
    Vector3,
)
from ..sensors.detectors import altitude_to_pressure_hpa
from ..sensors.sampler import SensorKind

LOGGER = logging.getLogger(__name__)

GRAVITY_MS2 = 9.80665
FALL_SPIKE_MS2 = 30.0
AUDIO_SAMPLE_RATE_HZ = 8000
MAX_SEGMENT_AUDIO_S = 600.0


@dataclass(slots=True)
class SimulatedProfile:
    seed: int | None = None
    latitude: float = 52.3702
    longitude: float = 4.8952
    base_altitude_m: float = 10.0
    fall_every_s: float = 0.0
    altitude_step_every_s: float = 0.0
    altitude_step_m: float = 6.0
    battery_start_level: float = 0.85
    battery_drain_per_hour: float = 0.08
    charging: bool = False


class _TaskSubscription:
    def __init__(self, task: asyncio.Task[None]) -> None:
        self._task = task

    async def close(self) -> None:
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task


class SimulatedSensorStream:
    def __init__(self, kind: SensorKind, profile: SimulatedProfile, rng: np.random.Generator) -> None:
        self.kind = kind
        self._profile = profile
        self._rng = rng
        self._t0 = time.monotonic()
        self._last_event_slot = 0

    def _event_due(self, every_s: float) -> bool:
        if every_s <= 0:
            return False
        slot = int((time.monotonic() - self._t0) // every_s)
        if slot > self._last_event_slot:
            self._last_event_slot = slot
            return True
        return False

    def make_sample(self) -> Vector3 | BarometerReading:
        profile = self._profile
        if self.kind is SensorKind.accelerometer:
            vec = np.array([0.0, 0.0, GRAVITY_MS2]) + self._rng.normal(0.0, 0.15, size=3)
            if self._event_due(profile.fall_every_s):
                direction = self._rng.normal(0.0, 1.0, size=3)
                vec = direction / np.linalg.norm(direction) * FALL_SPIKE_MS2
            return Vector3.from_values(vec.tolist())
        if self.kind is SensorKind.gyroscope:
            return Vector3.from_values(self._rng.normal(0.0, 0.02, size=3).tolist())
        if self._event_due(profile.altitude_step_every_s):
            profile.base_altitude_m += profile.altitude_step_m
        altitude = profile.base_altitude_m + float(self._rng.normal(0.0, 0.05))
        return BarometerReading(pressure_hpa=altitude_to_pressure_hpa(altitude))

    async def subscribe(
        self,
        listener: Callable[[Any], None],
        interval_ms: int,
        *,
        on_ended: Callable[[str], None] | None = None,
    ) -> _TaskSubscription:
        # Generated samples never run dry, so on_ended is never called.
        task = asyncio.create_task(self._run(listener, max(1, interval_ms) / 1000.0))
        return _TaskSubscription(task)

    async def _run(self, listener: Callable[[Any], None], period_s: float) -> None:
        while True:
            try:
                listener(self.make_sample())
            except Exception:
                LOGGER.warning("Sensor listener failed for %s", self.kind, exc_info=True)
            await asyncio.sleep(period_s)


class SimulatedPermissionGate:
    def __init__(self, *, location: bool = True) -> None:
        self.location = location

    async def request_location(self) -> bool:
        return self.location


class SimulatedLocationProvider:
    def __init__(self, profile: SimulatedProfile, rng: np.random.Generator) -> None:
        self._profile = profile
        self._rng = rng

    async def current_location(self) -> Coordinates:
        jitter = self._rng.normal(0.0, 0.00005, size=2)
        return Coordinates(
            latitude=self._profile.latitude + float(jitter[0]),
            longitude=self._profile.longitude + float(jitter[1]),
        )


class SimulatedBatteryProvider:
    def __init__(self, profile: SimulatedProfile) -> None:
        self._profile = profile
        self._t0 = time.monotonic()

    async def read_battery(self) -> BatteryStatus:
        hours = (time.monotonic() - self._t0) / 3600.0
        rate = self._profile.battery_drain_per_hour
        if self._profile.charging:
            level = min(1.0, self._profile.battery_start_level + rate * hours)
            state = BatteryState.full if level >= 1.0 else BatteryState.charging
        else:
            level = max(0.0, self._profile.battery_start_level - rate * hours)
            state = BatteryState.unplugged
        return BatteryStatus(level=level, state=state, low_power_mode=level < 0.2)


class SimulatedNetworkProvider:
    def __init__(self, *, connected: bool = True) -> None:
        self.connected = connected

    async def read_network(self) -> NetworkState:
        if not self.connected:
            return NetworkState.disconnected()
        return NetworkState(is_connected=True, is_internet_reachable=True, type="wifi")


def write_noise_wav(path: Path, duration_s: float, rng: np.random.Generator) -> None:
    frames = max(1, int(min(duration_s, MAX_SEGMENT_AUDIO_S) * AUDIO_SAMPLE_RATE_HZ))
    samples = np.clip(rng.normal(0.0, 60.0, size=frames), -32768, 32767).astype("<i2")
    with wave.open(str(path), "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(AUDIO_SAMPLE_RATE_HZ)
        wav.writeframes(samples.tobytes())


class SimulatedMicrophone:
    file_extension = "wav"

    def __init__(self, rng: np.random.Generator, *, permission: bool = True) -> None:
        self._rng = rng
        self.permission = permission
        self._path: Path | None = None
        self._started_mono_s = 0.0

    async def request_permission(self) -> bool:
        return self.permission

    async def configure_mode(self) -> None:
        return None

    async def begin(self, path: Path) -> None:
        self._path = path
        self._started_mono_s = time.monotonic()

    async def end(self) -> None:
        path, self._path = self._path, None
        if path is None:
            return
        duration_s = time.monotonic() - self._started_mono_s
        await asyncio.to_thread(write_noise_wav, path, duration_s, self._rng)
