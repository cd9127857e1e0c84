"""Shared detection and session constants: single source of truth.

Every numeric literal that appears in more than one module should live here
so that a change only needs to happen in one place.
"""

from __future__ import annotations

from typing import Final

# ---------------------------------------------------------------------------
# Motion thresholds (accelerometer magnitude, device units of m/s²)
# ---------------------------------------------------------------------------
FALL_THRESHOLD: Final[float] = 20.0
"""Magnitude strictly above this marks a probable fall."""

IMPACT_THRESHOLD: Final[float] = 25.0
"""Magnitude strictly above this marks an impact.  Checked independently of
the fall threshold, so a single strong sample raises both alerts."""

FALL_COOLDOWN_S: Final[float] = 3.0
IMPACT_COOLDOWN_S: Final[float] = 3.0

# ---------------------------------------------------------------------------
# Barometric altitude
# ---------------------------------------------------------------------------
SEA_LEVEL_PRESSURE_HPA: Final[float] = 1013.25
BAROMETRIC_SCALE_M: Final[float] = 44330.0
BAROMETRIC_EXPONENT: Final[float] = 0.1903

ALTITUDE_CHANGE_THRESHOLD_M: Final[float] = 5.0
"""Absolute altitude delta between consecutive samples strictly above this
raises the altitude-change alert."""

ALTITUDE_CHANGE_COOLDOWN_S: Final[float] = 5.0

# ---------------------------------------------------------------------------
# Sampling / polling defaults
# ---------------------------------------------------------------------------
DEFAULT_SENSOR_INTERVAL_MS: Final[int] = 200
DEFAULT_CONTEXT_POLL_INTERVAL_S: Final[float] = 60.0
DEFAULT_ROTATION_INTERVAL_S: Final[float] = 120.0
DEFAULT_UPLOAD_DRAIN_TIMEOUT_S: Final[float] = 30.0

# ---------------------------------------------------------------------------
# Battery runtime estimate (rough, matches the phone app heuristics)
# ---------------------------------------------------------------------------
BATTERY_FULL_CHARGE_HOURS: Final[float] = 2.0
BATTERY_FULL_RUNTIME_HOURS: Final[float] = 12.0

# ---------------------------------------------------------------------------
# Persisted keys
# ---------------------------------------------------------------------------
RECORDINGS_KEY: Final[str] = "emergency-recordings"
AUTH_TOKEN_KEY: Final[str] = "authToken"

# ---------------------------------------------------------------------------
# Placeholder strings surfaced to the user and sent to the backend
# ---------------------------------------------------------------------------
ADDRESS_NOT_FOUND: Final[str] = "Address not found"
ADDRESS_FETCH_FAILED: Final[str] = "Failed to fetch address"
LOCATION_PERMISSION_DENIED: Final[str] = "Permission to access location was denied"
LOCATION_FETCH_FAILED: Final[str] = "Failed to fetch location"
