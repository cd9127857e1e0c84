"""Self-expiring alert flags.

Each alert keeps one value and one monotonic ``expires_at``.  A new crossing
overwrites both, so the cool-down always restarts from the latest event and
an older event can never clear a newer one.  Expiry is evaluated lazily on
read; there are no timers to cancel.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Generic, TypeVar

from ..constants import ALTITUDE_CHANGE_COOLDOWN_S, FALL_COOLDOWN_S, IMPACT_COOLDOWN_S
from ..domain_models import AlertState

T = TypeVar("T")

Clock = Callable[[], float]


class ExpiringAlert(Generic[T]):
    def __init__(self, cooldown_s: float, clock: Clock = time.monotonic) -> None:
        self.cooldown_s = max(0.0, float(cooldown_s))
        self._clock = clock
        self._value: T | None = None
        self._expires_at: float | None = None
        self.trigger_count = 0

    def trigger(self, value: T) -> None:
        self._value = value
        self._expires_at = self._clock() + self.cooldown_s
        self.trigger_count += 1

    def clear(self) -> None:
        self._value = None
        self._expires_at = None

    @property
    def expires_at(self) -> float | None:
        self._expire_if_due()
        return self._expires_at

    @property
    def value(self) -> T | None:
        self._expire_if_due()
        return self._value

    @property
    def active(self) -> bool:
        return self.value is not None

    def _expire_if_due(self) -> None:
        if self._expires_at is not None and self._clock() >= self._expires_at:
            self.clear()


class AlertBoard:
    """The three alerts the sampler maintains, with a consistent snapshot."""

    def __init__(
        self,
        clock: Clock = time.monotonic,
        *,
        fall_cooldown_s: float = FALL_COOLDOWN_S,
        impact_cooldown_s: float = IMPACT_COOLDOWN_S,
        altitude_cooldown_s: float = ALTITUDE_CHANGE_COOLDOWN_S,
    ) -> None:
        self.fall: ExpiringAlert[bool] = ExpiringAlert(fall_cooldown_s, clock)
        self.impact: ExpiringAlert[bool] = ExpiringAlert(impact_cooldown_s, clock)
        self.altitude_change: ExpiringAlert[float] = ExpiringAlert(altitude_cooldown_s, clock)

    def snapshot(self) -> AlertState:
        return AlertState(
            fall_detected=bool(self.fall.value),
            impact_detected=bool(self.impact.value),
            altitude_change_m=self.altitude_change.value,
        )

    def clear(self) -> None:
        self.fall.clear()
        self.impact.clear()
        self.altitude_change.clear()
