"""Tests for self-expiring alert flags."""

from __future__ import annotations

from conftest import FakeClock

from sosbeacon.sensors.alerts import AlertBoard, ExpiringAlert


def test_alert_inactive_until_triggered(fake_clock: FakeClock) -> None:
    alert: ExpiringAlert[bool] = ExpiringAlert(3.0, fake_clock)
    assert alert.active is False
    assert alert.value is None
    assert alert.expires_at is None


def test_alert_clears_after_cooldown_not_before(fake_clock: FakeClock) -> None:
    alert: ExpiringAlert[bool] = ExpiringAlert(3.0, fake_clock)
    alert.trigger(True)
    fake_clock.advance(2.999)
    assert alert.active is True
    fake_clock.advance(0.001)
    assert alert.active is False


def test_new_crossing_restarts_cooldown(fake_clock: FakeClock) -> None:
    alert: ExpiringAlert[bool] = ExpiringAlert(3.0, fake_clock)
    alert.trigger(True)
    fake_clock.advance(2.0)
    alert.trigger(True)
    # The first event's deadline passes; the later event keeps the flag set.
    fake_clock.advance(1.5)
    assert alert.active is True
    fake_clock.advance(1.5)
    assert alert.active is False
    assert alert.trigger_count == 2


def test_latest_value_wins(fake_clock: FakeClock) -> None:
    alert: ExpiringAlert[float] = ExpiringAlert(5.0, fake_clock)
    alert.trigger(6.2)
    fake_clock.advance(1.0)
    alert.trigger(-8.0)
    assert alert.value == -8.0
    assert alert.expires_at == fake_clock.now + 5.0


def test_clear_resets_immediately(fake_clock: FakeClock) -> None:
    alert: ExpiringAlert[bool] = ExpiringAlert(3.0, fake_clock)
    alert.trigger(True)
    alert.clear()
    assert alert.active is False


def test_board_alerts_expire_independently(fake_clock: FakeClock) -> None:
    board = AlertBoard(fake_clock, fall_cooldown_s=3.0, impact_cooldown_s=3.0, altitude_cooldown_s=5.0)
    board.fall.trigger(True)
    fake_clock.advance(1.0)
    board.impact.trigger(True)
    board.altitude_change.trigger(6.2)

    fake_clock.advance(2.0)
    snap = board.snapshot()
    assert snap.fall_detected is False
    assert snap.impact_detected is True
    assert snap.altitude_change_m == 6.2

    fake_clock.advance(1.0)
    assert board.snapshot().impact_detected is False
    fake_clock.advance(2.0)
    assert board.snapshot().altitude_change_m is None


def test_board_snapshot_wire_keys(fake_clock: FakeClock) -> None:
    board = AlertBoard(fake_clock)
    board.fall.trigger(True)
    assert board.snapshot().to_dict() == {
        "fallDetected": True,
        "impactDetected": False,
        "altitudeChange": None,
    }
    board.clear()
    assert board.snapshot().fall_detected is False
