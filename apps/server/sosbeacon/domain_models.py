"""Domain model objects for the emergency engine.

Typed dataclasses for sensor readings, alert state, device context,
recording segments and the upload bundle.  JSON shapes (persisted recording
list, backend wire format) use the camelCase keys the backend expects.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, replace
from typing import Any

from .constants import BATTERY_FULL_CHARGE_HOURS, BATTERY_FULL_RUNTIME_HOURS


def _as_float_or_none(value: object) -> float | None:
    if value is None or isinstance(value, bool) or value == "":
        return None
    try:
        out = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    if math.isnan(out) or math.isinf(out):
        return None
    return out


# ---------------------------------------------------------------------------
# 1) Sensor readings
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Vector3:
    """One accelerometer or gyroscope sample."""

    x: float
    y: float
    z: float

    @classmethod
    def from_values(cls, values: Any) -> Vector3:
        """Build from a ``[x, y, z, ...]`` sequence; raises ``ValueError``."""
        if not isinstance(values, (list, tuple)) or len(values) < 3:
            raise ValueError(f"Expected at least 3 axis values, got {values!r}")
        axes = [_as_float_or_none(v) for v in values[:3]]
        if any(a is None for a in axes):
            raise ValueError(f"Non-numeric axis value in {values!r}")
        return cls(float(axes[0]), float(axes[1]), float(axes[2]))  # type: ignore[arg-type]

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "z": self.z}


@dataclass(frozen=True, slots=True)
class BarometerReading:
    pressure_hpa: float

    def to_dict(self) -> dict[str, float]:
        return {"pressure": self.pressure_hpa}


# ---------------------------------------------------------------------------
# 2) Alerts
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AlertState:
    fall_detected: bool = False
    impact_detected: bool = False
    altitude_change_m: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "fallDetected": self.fall_detected,
            "impactDetected": self.impact_detected,
            "altitudeChange": self.altitude_change_m,
        }


# ---------------------------------------------------------------------------
# 3) Device context
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Coordinates:
    latitude: float
    longitude: float

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Coordinates:
        lat = _as_float_or_none(data.get("latitude"))
        lng = _as_float_or_none(data.get("longitude"))
        if lat is None or lng is None:
            raise ValueError(f"Missing latitude/longitude in {data!r}")
        if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
            raise ValueError(f"Coordinates out of range: {lat}, {lng}")
        return cls(latitude=lat, longitude=lng)

    def to_dict(self) -> dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}


class BatteryState(enum.StrEnum):
    unknown = "unknown"
    unplugged = "unplugged"
    charging = "charging"
    full = "full"


@dataclass(frozen=True, slots=True)
class BatteryStatus:
    """Battery snapshot.  ``level`` is the raw fraction in [0, 1]."""

    level: float | None
    state: BatteryState = BatteryState.unknown
    low_power_mode: bool | None = None

    @property
    def percent(self) -> int | None:
        """Integer percent, computed at read time (storage keeps the fraction)."""
        if self.level is None:
            return None
        return int(round(max(0.0, min(1.0, self.level)) * 100))

    def estimate_text(self) -> str | None:
        if self.level is None:
            return None
        if self.state == BatteryState.charging:
            hours = (1.0 - self.level) * BATTERY_FULL_CHARGE_HOURS
            return f"~{hours:.1f}h until full"
        hours = self.level * BATTERY_FULL_RUNTIME_HOURS
        return f"~{hours:.1f}h remaining"

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level,
            "percent": self.percent,
            "state": self.state.value,
            "lowPowerMode": self.low_power_mode,
            "estimate": self.estimate_text(),
        }


@dataclass(frozen=True, slots=True)
class NetworkState:
    is_connected: bool
    is_internet_reachable: bool
    type: str | None = None
    cellular_generation: str | None = None

    @classmethod
    def disconnected(cls) -> NetworkState:
        """Conservative default used when the network probe itself fails."""
        return cls(is_connected=False, is_internet_reachable=False)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "isConnected": self.is_connected,
            "isInternetReachable": self.is_internet_reachable,
        }
        if self.type is not None:
            out["type"] = self.type
        if self.cellular_generation is not None:
            out["cellularGeneration"] = self.cellular_generation
        return out


@dataclass(frozen=True, slots=True)
class DeviceContext:
    location: Coordinates | None = None
    address: str | None = None
    battery: BatteryStatus | None = None
    network: NetworkState | None = None
    location_error: str | None = None

    def evolve(self, **changes: Any) -> DeviceContext:
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "location": self.location.to_dict() if self.location else None,
            "address": self.address,
            "battery": self.battery.to_dict() if self.battery else None,
            "networkInfo": self.network.to_dict() if self.network else None,
            "locationError": self.location_error,
        }


# ---------------------------------------------------------------------------
# 4) Recording segments
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RecordingSegment:
    uri: str
    timestamp: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RecordingSegment:
        uri = data.get("uri")
        timestamp = data.get("timestamp")
        if not isinstance(uri, str) or not uri:
            raise ValueError(f"Recording entry without uri: {data!r}")
        if not isinstance(timestamp, str) or not timestamp:
            raise ValueError(f"Recording entry without timestamp: {data!r}")
        return cls(uri=uri, timestamp=timestamp)

    def to_dict(self) -> dict[str, str]:
        return {"uri": self.uri, "timestamp": self.timestamp}


# ---------------------------------------------------------------------------
# 5) Upload bundle
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class EmergencyBundle:
    """Wire entity POSTed to ``/api/emergency``; built fresh per upload."""

    location: Coordinates | None
    address: str | None
    battery_level: int | None
    battery_state: str | None
    network_info: NetworkState | None
    fall_detected: bool
    altitude_change: float | None
    impact_detected: bool
    recording: str | None = None

    @classmethod
    def build(
        cls,
        context: DeviceContext,
        alerts: AlertState,
        recording: str | None,
    ) -> EmergencyBundle:
        battery = context.battery
        return cls(
            location=context.location,
            address=context.address,
            battery_level=battery.percent if battery else None,
            battery_state=battery.state.value if battery else None,
            network_info=context.network,
            fall_detected=alerts.fall_detected,
            altitude_change=alerts.altitude_change_m,
            impact_detected=alerts.impact_detected,
            recording=recording,
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "location": self.location.to_dict() if self.location else None,
            "address": self.address,
            "batteryLevel": self.battery_level,
            "batteryState": self.battery_state,
            "networkInfo": self.network_info.to_dict() if self.network_info else None,
            "fallDetected": self.fall_detected,
            "altitudeChange": self.altitude_change,
            "impactDetected": self.impact_detected,
            "recording": self.recording,
        }

    def summary(self) -> dict[str, Any]:
        """Payload without the audio body, for status projection and logs."""
        out = self.to_payload()
        recording = out.pop("recording")
        out["hasRecording"] = recording is not None
        return out
