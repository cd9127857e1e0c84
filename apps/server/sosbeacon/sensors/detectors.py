"""Pure threshold math for the motion and altitude detectors.

No I/O and no clocks: callers own timing (see :mod:`.alerts`).
"""

from __future__ import annotations

import math
from typing import NamedTuple

from ..constants import (
    ALTITUDE_CHANGE_THRESHOLD_M,
    BAROMETRIC_EXPONENT,
    BAROMETRIC_SCALE_M,
    FALL_THRESHOLD,
    IMPACT_THRESHOLD,
    SEA_LEVEL_PRESSURE_HPA,
)
from ..domain_models import Vector3


class MotionVerdict(NamedTuple):
    magnitude: float
    fall: bool
    impact: bool


def acceleration_magnitude(sample: Vector3) -> float:
    return math.sqrt(sample.x * sample.x + sample.y * sample.y + sample.z * sample.z)


def classify_motion(
    sample: Vector3,
    *,
    fall_threshold: float = FALL_THRESHOLD,
    impact_threshold: float = IMPACT_THRESHOLD,
) -> MotionVerdict:
    """Both thresholds are checked on every sample; they are not exclusive."""
    magnitude = acceleration_magnitude(sample)
    return MotionVerdict(
        magnitude=magnitude,
        fall=magnitude > fall_threshold,
        impact=magnitude > impact_threshold,
    )


def pressure_to_altitude_m(pressure_hpa: float) -> float:
    """International barometric formula relative to standard sea-level pressure."""
    return BAROMETRIC_SCALE_M * (
        1.0 - math.pow(pressure_hpa / SEA_LEVEL_PRESSURE_HPA, BAROMETRIC_EXPONENT)
    )


def altitude_to_pressure_hpa(altitude_m: float) -> float:
    """Inverse of :func:`pressure_to_altitude_m`."""
    return SEA_LEVEL_PRESSURE_HPA * math.pow(
        1.0 - altitude_m / BAROMETRIC_SCALE_M, 1.0 / BAROMETRIC_EXPONENT
    )


class AltitudeTracker:
    """Tracks the previous altitude and reports threshold-crossing deltas.

    Only the single previous altitude is retained.  It is overwritten after
    every sample whether or not the threshold was crossed.
    """

    def __init__(self, threshold_m: float = ALTITUDE_CHANGE_THRESHOLD_M) -> None:
        self.threshold_m = float(threshold_m)
        self.previous_altitude_m: float | None = None

    def observe_pressure(self, pressure_hpa: float) -> float | None:
        if not math.isfinite(pressure_hpa) or pressure_hpa <= 0:
            return None
        return self.observe_altitude(pressure_to_altitude_m(pressure_hpa))

    def observe_altitude(self, altitude_m: float) -> float | None:
        """Return the signed delta when ``|delta| > threshold``, else ``None``."""
        crossing: float | None = None
        previous = self.previous_altitude_m
        if previous is not None:
            delta = altitude_m - previous
            if abs(delta) > self.threshold_m:
                crossing = delta
        self.previous_altitude_m = altitude_m
        return crossing

    def reset(self) -> None:
        self.previous_altitude_m = None
