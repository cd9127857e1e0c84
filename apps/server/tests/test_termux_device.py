"""Tests for the Termux:API device adapters (command output parsing)."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from sosbeacon.audio_recorder import PermissionDenied, RecorderError
from sosbeacon.device import termux
from sosbeacon.device.runner import RC_NOT_FOUND, RC_TIMEOUT, CommandRunner
from sosbeacon.device.termux import (
    JsonObjectAssembler,
    TermuxBatteryProvider,
    TermuxLocationProvider,
    TermuxMicrophone,
    TermuxNetworkProvider,
    TermuxPermissionGate,
    TermuxSensorStream,
    sensor_values,
)
from sosbeacon.domain_models import BarometerReading, BatteryState, Coordinates, Vector3
from sosbeacon.sensors import SensorKind


class _ScriptedRunner(CommandRunner):
    """Answers ``run`` by command name; records every call."""

    def __init__(self, script: dict[str, tuple[int, str, str]]) -> None:
        self.script = script
        self.calls: list[list[str]] = []

    async def run(self, args, *, timeout=30, env=None):
        self.calls.append(list(args))
        return self.script.get(args[0], (RC_NOT_FOUND, "", f"Command not found: {args[0]}"))


# ---------------------------------------------------------------------------
# Sensor output parsing
# ---------------------------------------------------------------------------

_ACCEL_OUTPUT = """{
  "LSM6DSO Accelerometer": {
    "values": [
      0.12,
      -0.03,
      9.79
    ]
  }
}
{
  "LSM6DSO Accelerometer": {
    "values": [
      0.5,
      0.1,
      30.2
    ]
  }
}
"""


def test_assembler_yields_multiline_objects() -> None:
    assembler = JsonObjectAssembler()
    objects = [obj for line in _ACCEL_OUTPUT.splitlines(keepends=True) if (obj := assembler.feed(line))]
    assert len(objects) == 2
    assert sensor_values(objects[1]) == [0.5, 0.1, 30.2]


def test_assembler_skips_garbage_and_recovers() -> None:
    assembler = JsonObjectAssembler()
    assert assembler.feed("{ not json }\n") is None
    assert assembler.feed("\n") is None
    assert assembler.feed('{"s": {"values": [1]}}\n') == {"s": {"values": [1]}}


def test_sensor_values_missing() -> None:
    assert sensor_values({"s": {"other": 1}}) is None
    assert sensor_values({}) is None


async def _feed_stream(stream: TermuxSensorStream, text: str) -> list:
    reader = asyncio.StreamReader()
    reader.feed_data(text.encode())
    reader.feed_eof()
    proc = SimpleNamespace(stdout=reader, returncode=0, pid=1)
    samples: list = []
    await stream._read(proc, samples.append)
    return samples


@pytest.mark.asyncio
async def test_sensor_stream_decodes_vectors() -> None:
    stream = TermuxSensorStream(SensorKind.accelerometer, "accelerometer", _ScriptedRunner({}))
    samples = await _feed_stream(stream, _ACCEL_OUTPUT)
    assert samples == [Vector3(0.12, -0.03, 9.79), Vector3(0.5, 0.1, 30.2)]


@pytest.mark.asyncio
async def test_sensor_stream_decodes_pressure_and_drops_bad_samples() -> None:
    stream = TermuxSensorStream(SensorKind.barometer, "pressure", _ScriptedRunner({}))
    text = (
        json.dumps({"BMP280 Pressure": {"values": []}})
        + "\n"
        + json.dumps({"BMP280 Pressure": {"values": [1008.4]}})
        + "\n"
    )
    assert await _feed_stream(stream, text) == [BarometerReading(1008.4)]


@pytest.mark.asyncio
async def test_sensor_subscribe_spawns_termux_sensor() -> None:
    runner = _ScriptedRunner({})
    reader = asyncio.StreamReader()
    reader.feed_eof()
    proc = SimpleNamespace(stdout=reader, returncode=0, pid=42)
    runner.spawn = AsyncMock(return_value=proc)
    stream = TermuxSensorStream(SensorKind.gyroscope, "gyroscope", runner)

    subscription = await stream.subscribe(lambda sample: None, 200)
    await subscription.close()

    runner.spawn.assert_awaited_once_with(["termux-sensor", "-s", "gyroscope", "-d", "200"])


@pytest.mark.asyncio
async def test_sensor_stream_reports_process_exit() -> None:
    stream = TermuxSensorStream(SensorKind.accelerometer, "accelerometer", _ScriptedRunner({}))
    reader = asyncio.StreamReader()
    reader.feed_data(_ACCEL_OUTPUT.encode())
    reader.feed_eof()
    proc = SimpleNamespace(stdout=reader, returncode=1, pid=7)
    samples: list = []
    reasons: list[str] = []

    await stream._read(proc, samples.append, reasons.append)

    assert len(samples) == 2
    assert reasons == ["termux-sensor exited (rc=1)"]


# ---------------------------------------------------------------------------
# Location / battery / network
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_permission_gate_detects_refusal() -> None:
    refused = _ScriptedRunner({"termux-location": (1, "", "Location permission not granted")})
    assert await TermuxPermissionGate(refused).request_location() is False
    granted = _ScriptedRunner({"termux-location": (0, "{}", "")})
    assert await TermuxPermissionGate(granted).request_location() is True


@pytest.mark.asyncio
async def test_location_provider_parses_fix() -> None:
    runner = _ScriptedRunner(
        {"termux-location": (0, json.dumps({"latitude": 52.37, "longitude": 4.89, "accuracy": 8}), "")}
    )
    assert await TermuxLocationProvider(runner).current_location() == Coordinates(52.37, 4.89)
    assert runner.calls[0] == ["termux-location", "-p", "gps", "-r", "once"]


@pytest.mark.asyncio
async def test_location_provider_failure_raises() -> None:
    runner = _ScriptedRunner({"termux-location": (RC_TIMEOUT, "", "Command timed out")})
    with pytest.raises(RuntimeError):
        await TermuxLocationProvider(runner).current_location()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "expected"),
    [
        ("CHARGING", BatteryState.charging),
        ("FULL", BatteryState.full),
        ("DISCHARGING", BatteryState.unplugged),
        ("WEIRD", BatteryState.unknown),
    ],
)
async def test_battery_provider(status: str, expected: BatteryState) -> None:
    runner = _ScriptedRunner(
        {"termux-battery-status": (0, json.dumps({"percentage": 64, "status": status}), "")}
    )
    battery = await TermuxBatteryProvider(runner).read_battery()
    assert battery.level == pytest.approx(0.64)
    assert battery.percent == 64
    assert battery.state == expected


@pytest.mark.asyncio
async def test_battery_provider_bad_output_raises() -> None:
    runner = _ScriptedRunner({"termux-battery-status": (0, "oops", "")})
    with pytest.raises(RuntimeError):
        await TermuxBatteryProvider(runner).read_battery()


@pytest.mark.asyncio
async def test_network_prefers_wifi(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(termux, "tcp_reachable", AsyncMock(return_value=True))
    runner = _ScriptedRunner(
        {"termux-wifi-connectioninfo": (0, json.dumps({"supplicant_state": "COMPLETED"}), "")}
    )
    state = await TermuxNetworkProvider(runner).read_network()
    assert state.to_dict() == {"isConnected": True, "isInternetReachable": True, "type": "wifi"}


@pytest.mark.asyncio
async def test_network_reports_cellular_generation(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(termux, "tcp_reachable", AsyncMock(return_value=False))
    runner = _ScriptedRunner(
        {
            "termux-wifi-connectioninfo": (0, json.dumps({"supplicant_state": "DISCONNECTED"}), ""),
            "termux-telephony-deviceinfo": (
                0,
                json.dumps({"data_state": "connected", "network_type": "lte"}),
                "",
            ),
        }
    )
    state = await TermuxNetworkProvider(runner).read_network()
    assert state.type == "cellular"
    assert state.cellular_generation == "4g"
    assert state.is_internet_reachable is False


@pytest.mark.asyncio
async def test_network_offline(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(termux, "tcp_reachable", AsyncMock(return_value=False))
    state = await TermuxNetworkProvider(_ScriptedRunner({})).read_network()
    assert state.is_connected is False
    assert state.type == "none"


# ---------------------------------------------------------------------------
# Microphone
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_microphone_begin_and_end(tmp_path: Path) -> None:
    runner = _ScriptedRunner({"termux-microphone-record": (0, "Recording started", "")})
    mic = TermuxMicrophone(runner)
    await mic.begin(tmp_path / "seg.m4a")
    await mic.end()
    assert runner.calls == [
        ["termux-microphone-record", "-f", str(tmp_path / "seg.m4a"), "-e", "aac"],
        ["termux-microphone-record", "-q"],
    ]


@pytest.mark.asyncio
async def test_microphone_permission_refusal(tmp_path: Path) -> None:
    runner = _ScriptedRunner(
        {"termux-microphone-record": (0, "", "RECORD_AUDIO permission not granted")}
    )
    with pytest.raises(PermissionDenied):
        await TermuxMicrophone(runner).begin(tmp_path / "seg.m4a")


@pytest.mark.asyncio
async def test_microphone_error_output(tmp_path: Path) -> None:
    runner = _ScriptedRunner({"termux-microphone-record": (0, "Error: recording already in progress", "")})
    with pytest.raises(RecorderError):
        await TermuxMicrophone(runner).begin(tmp_path / "seg.m4a")


# ---------------------------------------------------------------------------
# CommandRunner
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_command_runner_captures_output() -> None:
    rc, out, err = await CommandRunner().run([sys.executable, "-c", "print('hello')"])
    assert rc == 0
    assert out.strip() == "hello"
    assert err == ""


@pytest.mark.asyncio
async def test_command_runner_missing_binary() -> None:
    rc, _, err = await CommandRunner().run(["sosbeacon-no-such-binary"])
    assert rc == RC_NOT_FOUND
    assert "not found" in err


@pytest.mark.asyncio
async def test_command_runner_timeout() -> None:
    rc, _, _ = await CommandRunner().run(
        [sys.executable, "-c", "import time; time.sleep(5)"], timeout=0.2
    )
    assert rc == RC_TIMEOUT
