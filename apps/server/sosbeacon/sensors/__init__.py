"""Sensor sampling and fall / impact / altitude-change detection."""

from __future__ import annotations

from .alerts import AlertBoard, ExpiringAlert
from .detectors import (
    AltitudeTracker,
    acceleration_magnitude,
    altitude_to_pressure_hpa,
    classify_motion,
    pressure_to_altitude_m,
)
from .sampler import SensorKind, SensorSampler, SensorStream, SensorSubscription

__all__ = [
    "AlertBoard",
    "AltitudeTracker",
    "ExpiringAlert",
    "SensorKind",
    "SensorSampler",
    "SensorStream",
    "SensorSubscription",
    "acceleration_magnitude",
    "altitude_to_pressure_hpa",
    "classify_motion",
    "pressure_to_altitude_m",
]
