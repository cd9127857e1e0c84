"""Tests for the HTTP route handlers, called directly via ``route.endpoint``."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from conftest import (
    FakeBattery,
    FakeLocation,
    FakeMicrophone,
    FakeNetwork,
    FakePermissionGate,
    FakeStream,
    FakeTransport,
)
from fastapi import HTTPException

from sosbeacon.app import RuntimeState, build_runtime
from sosbeacon.config import GEOCODING_API_KEY_ENV, load_config
from sosbeacon.credentials import AUTH_TOKEN_ENV
from sosbeacon.device import DeviceBundle
from sosbeacon.http_transport import HttpResponse
from sosbeacon.routes import create_router
from sosbeacon.sensors import SensorKind

_CONTACTS_OK = HttpResponse(status=200, body=b'{"contacts": [{"name": "Ana"}]}')
_NO_CONTACTS = HttpResponse(status=200, body=b'{"contacts": []}')
_POSTED = HttpResponse(status=201, body=b"{}")


def _device() -> DeviceBundle:
    return DeviceBundle(
        accelerometer=FakeStream(SensorKind.accelerometer),
        gyroscope=FakeStream(SensorKind.gyroscope),
        barometer=None,
        permissions=FakePermissionGate(),
        location=FakeLocation(),
        battery=FakeBattery(),
        network=FakeNetwork(),
        microphone=FakeMicrophone(),
    )


def _runtime(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, *responses: HttpResponse) -> RuntimeState:
    monkeypatch.setenv(AUTH_TOKEN_ENV, "tok-123")
    monkeypatch.delenv(GEOCODING_API_KEY_ENV, raising=False)
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text(
        yaml.safe_dump({"storage": {"data_dir": "data", "recordings_dir": "data/recordings"}}),
        encoding="utf-8",
    )
    runtime = build_runtime(load_config(cfg_path), _device())
    runtime.backend._transport = FakeTransport(*responses)
    return runtime


def _endpoint(runtime: RuntimeState, path: str, method: str = "GET"):
    router = create_router(runtime)
    for route in router.routes:
        if getattr(route, "path", "") == path and method in getattr(route, "methods", set()):
            return route.endpoint
    raise AssertionError(f"{method} {path} not registered")


def test_all_routes_registered(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    router = create_router(_runtime(tmp_path, monkeypatch))
    paths = {getattr(r, "path", "") for r in router.routes}
    assert {
        "/api/health",
        "/api/session",
        "/api/session/start",
        "/api/session/stop",
        "/api/recordings",
        "/api/recordings/{timestamp}",
        "/api/context",
        "/api/context/refresh",
        "/api/notices",
        "/ws",
    } <= paths


@pytest.mark.asyncio
async def test_health(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    runtime = _runtime(tmp_path, monkeypatch)
    result = await _endpoint(runtime, "/api/health")()
    assert result["status"] == "ok"
    assert result["session_state"] == "idle"
    assert result["ws_connections"] == 0
    assert set(result["sensors"]) == {"accelerometer", "gyroscope", "barometer"}


@pytest.mark.asyncio
async def test_session_start_stop_and_recordings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    runtime = _runtime(tmp_path, monkeypatch, _CONTACTS_OK, _POSTED)

    started = await _endpoint(runtime, "/api/session/start", "POST")()
    assert started == {"started": True, "reason": None, "state": "active"}
    session = await _endpoint(runtime, "/api/session")()
    assert session["isRecording"] is True

    stopped = await _endpoint(runtime, "/api/session/stop", "POST")()
    assert stopped["stopped"] is True
    assert stopped["state"] == "idle"
    segment = stopped["final_segment"]
    assert segment["uri"].startswith("file://")

    listing = await _endpoint(runtime, "/api/recordings")()
    assert listing == {"recordings": [segment]}

    posted = runtime.backend._transport.requests[-1]
    assert posted["url"].endswith("/api/emergency")
    assert json.loads(posted["body"])["recording"] is not None


@pytest.mark.asyncio
async def test_delete_recording(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    runtime = _runtime(tmp_path, monkeypatch, _CONTACTS_OK, _POSTED)
    await runtime.session.start()
    result = await runtime.session.stop()
    timestamp = result.final_segment.timestamp
    delete = _endpoint(runtime, "/api/recordings/{timestamp}", "DELETE")

    assert await delete(timestamp) == {"status": "deleted", "timestamp": timestamp}
    assert runtime.store.entries() == []
    assert not list((tmp_path / "data" / "recordings").iterdir())

    with pytest.raises(HTTPException) as info:
        await delete(timestamp)
    assert info.value.status_code == 404


@pytest.mark.asyncio
async def test_start_without_contacts_surfaces_notice(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    runtime = _runtime(tmp_path, monkeypatch, _NO_CONTACTS)

    result = await _endpoint(runtime, "/api/session/start", "POST")()
    assert result == {"started": False, "reason": "no_contacts", "state": "idle"}

    notices = (await _endpoint(runtime, "/api/notices")())["notices"]
    assert notices[-1]["code"] == "no_contacts"
    assert notices[-1]["action"] == "add_contact"


@pytest.mark.asyncio
async def test_stop_when_idle(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    runtime = _runtime(tmp_path, monkeypatch)
    result = await _endpoint(runtime, "/api/session/stop", "POST")()
    assert result["stopped"] is False
    assert result["reason"] == "not_active"
    assert result["final_segment"] is None


@pytest.mark.asyncio
async def test_context_refresh(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    runtime = _runtime(tmp_path, monkeypatch)
    before = await _endpoint(runtime, "/api/context")()
    assert before["location"] is None

    after = await _endpoint(runtime, "/api/context/refresh", "POST")()
    assert after["location"] == {"latitude": 52.37, "longitude": 4.89}
    assert after["battery"]["percent"] == 50
    assert after["networkInfo"]["type"] == "wifi"
    assert after["address"] is None


def test_ws_payload_is_json_ready(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    runtime = _runtime(tmp_path, monkeypatch)
    payload = runtime.build_ws_payload()
    assert set(payload) == {"version", "session", "alerts", "sensors", "readings", "context", "notices"}
    decoded = json.loads(runtime.ws_hub._encode(runtime.build_ws_payload))
    assert decoded["session"]["state"] == "idle"
    assert decoded["alerts"] == {"fallDetected": False, "impactDetected": False, "altitudeChange": None}
