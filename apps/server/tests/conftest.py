"""Shared test helpers and fakes for the sosbeacon test suite."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from sosbeacon.backend_client import UploadResult
from sosbeacon.context_probe import ContextProbe
from sosbeacon.domain_models import (
    BatteryState,
    BatteryStatus,
    Coordinates,
    EmergencyBundle,
    NetworkState,
)


def wait_until(predicate, timeout_s: float = 2.0, step_s: float = 0.02) -> bool:
    """Poll *predicate* until it returns truthy, or *timeout_s* expires."""
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(step_s)
    return False


async def async_wait_until(predicate, timeout_s: float = 2.0, step_s: float = 0.02) -> bool:
    """Async version of :func:`wait_until`; yields to the event loop between polls."""
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        if predicate():
            return True
        await asyncio.sleep(step_s)
    return False


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Sensor streams
# ---------------------------------------------------------------------------


class FakeSubscription:
    def __init__(self, stream: FakeStream) -> None:
        self._stream = stream
        self.closed = False

    async def close(self) -> None:
        self.closed = True
        self._stream.listener = None


class FakeStream:
    def __init__(self, kind: Any, *, fail: Exception | None = None) -> None:
        self.kind = kind
        self.fail = fail
        self.listener: Callable[[Any], None] | None = None
        self.interval_ms: int | None = None
        self.on_ended: Callable[[str], None] | None = None
        self.subscriptions: list[FakeSubscription] = []

    async def subscribe(
        self,
        listener: Callable[[Any], None],
        interval_ms: int,
        *,
        on_ended: Callable[[str], None] | None = None,
    ) -> FakeSubscription:
        if self.fail is not None:
            raise self.fail
        self.listener = listener
        self.interval_ms = interval_ms
        self.on_ended = on_ended
        sub = FakeSubscription(self)
        self.subscriptions.append(sub)
        return sub

    def push(self, sample: Any) -> None:
        assert self.listener is not None, "stream not subscribed"
        self.listener(sample)

    def end(self, reason: str = "stream ended") -> None:
        assert self.on_ended is not None, "stream not subscribed"
        self.on_ended(reason)


# ---------------------------------------------------------------------------
# Recorder backend
# ---------------------------------------------------------------------------


class FakeMicrophone:
    file_extension = "wav"

    def __init__(self) -> None:
        self.permission = True
        self.fail_begin: Exception | None = None
        self.fail_begin_times = 0
        self.fail_end: Exception | None = None
        self.skip_file = False
        self.begin_calls: list[Path] = []
        self.end_calls = 0
        self.configure_calls = 0
        self._path: Path | None = None

    async def request_permission(self) -> bool:
        return self.permission

    async def configure_mode(self) -> None:
        self.configure_calls += 1

    async def begin(self, path: Path) -> None:
        if self.fail_begin is not None and self.fail_begin_times != 0:
            self.fail_begin_times -= 1
            raise self.fail_begin
        self.begin_calls.append(path)
        self._path = path

    async def end(self) -> None:
        self.end_calls += 1
        path, self._path = self._path, None
        if self.fail_end is not None:
            raise self.fail_end
        if path is not None and not self.skip_file:
            path.write_bytes(b"RIFF-fake-audio")


# ---------------------------------------------------------------------------
# Context collaborators
# ---------------------------------------------------------------------------


class FakePermissionGate:
    def __init__(self, granted: bool = True) -> None:
        self.granted = granted
        self.calls = 0

    async def request_location(self) -> bool:
        self.calls += 1
        return self.granted


class FakeLocation:
    def __init__(self, coords: Coordinates | None = None) -> None:
        self.coords = coords or Coordinates(latitude=52.37, longitude=4.89)
        self.fail: Exception | None = None
        self.calls = 0

    async def current_location(self) -> Coordinates:
        self.calls += 1
        if self.fail is not None:
            raise self.fail
        return self.coords


class FakeResolver:
    def __init__(self, address: str | None = "Damrak 1, Amsterdam") -> None:
        self.address = address
        self.fail: Exception | None = None
        self.calls: list[tuple[float, float]] = []

    async def resolve(self, latitude: float, longitude: float) -> str | None:
        self.calls.append((latitude, longitude))
        if self.fail is not None:
            raise self.fail
        return self.address


class FakeBattery:
    def __init__(self, level: float | None = 0.5, state: BatteryState = BatteryState.unplugged) -> None:
        self.status = BatteryStatus(level=level, state=state)
        self.fail: Exception | None = None

    async def read_battery(self) -> BatteryStatus:
        if self.fail is not None:
            raise self.fail
        return self.status


class FakeNetwork:
    def __init__(self) -> None:
        self.state = NetworkState(is_connected=True, is_internet_reachable=True, type="wifi")
        self.fail: Exception | None = None

    async def read_network(self) -> NetworkState:
        if self.fail is not None:
            raise self.fail
        return self.state


def make_probe(
    *,
    permissions: FakePermissionGate | None = None,
    location: FakeLocation | None = None,
    battery: FakeBattery | None = None,
    network: FakeNetwork | None = None,
    resolver: FakeResolver | None = None,
) -> ContextProbe:
    return ContextProbe(
        permissions=permissions or FakePermissionGate(),
        location=location or FakeLocation(),
        battery=battery or FakeBattery(),
        network=network or FakeNetwork(),
        address_resolver=resolver,
    )


# ---------------------------------------------------------------------------
# Backend
# ---------------------------------------------------------------------------


class FakeBackend:
    def __init__(self, contacts: int = 1) -> None:
        self.contacts = contacts
        self.contacts_error: Exception | None = None
        self.contacts_calls = 0
        self.result = UploadResult(ok=True, status=201)
        self.post_delay_s = 0.0
        self.posted: list[EmergencyBundle] = []

    async def has_emergency_contacts(self) -> bool:
        self.contacts_calls += 1
        if self.contacts_error is not None:
            raise self.contacts_error
        return self.contacts > 0

    async def post_emergency(self, bundle: EmergencyBundle) -> UploadResult:
        if self.post_delay_s:
            await asyncio.sleep(self.post_delay_s)
        self.posted.append(bundle)
        return self.result


# ---------------------------------------------------------------------------
# HTTP transport
# ---------------------------------------------------------------------------


class FakeTransport:
    """Records requests and replays queued responses (or raises queued errors)."""

    def __init__(self, *responses: Any) -> None:
        self.responses = list(responses)
        self.requests: list[dict[str, Any]] = []

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        body: bytes | None = None,
        timeout_s: float = 30.0,
    ) -> Any:
        self.requests.append(
            {"method": method, "url": url, "headers": dict(headers or {}), "body": body}
        )
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()
