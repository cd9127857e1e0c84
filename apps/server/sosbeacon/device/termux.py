"""Android device adapters backed by the Termux:API command-line tools.

Sensors stream from one long-lived ``termux-sensor`` process per sensor.  Its
output is a sequence of pretty-printed JSON objects spanning several lines,
so lines are accumulated until the braces balance before parsing.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from ..audio_recorder import PermissionDenied, RecorderError
from ..domain_models import (
    BarometerReading,
    BatteryState,
    BatteryStatus,
    Coordinates,
    NetworkState,
    Vector3,
)
from ..sensors.sampler import SensorKind
from .runner import CommandRunner, terminate_process

LOGGER = logging.getLogger(__name__)

DEFAULT_SENSOR_NAMES: dict[SensorKind, str] = {
    SensorKind.accelerometer: "accelerometer",
    SensorKind.gyroscope: "gyroscope",
    SensorKind.barometer: "pressure",
}

_BATTERY_STATES = {
    "CHARGING": BatteryState.charging,
    "FULL": BatteryState.full,
    "DISCHARGING": BatteryState.unplugged,
    "NOT_CHARGING": BatteryState.unplugged,
}

_CELLULAR_GENERATIONS = {
    "gprs": "2g",
    "edge": "2g",
    "cdma": "2g",
    "1xrtt": "2g",
    "umts": "3g",
    "hsdpa": "3g",
    "hsupa": "3g",
    "hspa": "3g",
    "hspap": "3g",
    "evdo_0": "3g",
    "evdo_a": "3g",
    "lte": "4g",
    "nr": "5g",
}


def _parse_json_output(stdout: str, *, what: str) -> dict[str, Any]:
    try:
        data = json.loads(stdout)
    except json.JSONDecodeError as exc:
        raise RuntimeError(f"Unparseable {what} output: {stdout[:120]!r}") from exc
    if not isinstance(data, dict):
        raise RuntimeError(f"Unexpected {what} output: {stdout[:120]!r}")
    return data


def _mentions_permission(text: str) -> bool:
    return "permission" in text.lower()


class JsonObjectAssembler:
    """Collect lines until a complete top-level JSON object is available."""

    def __init__(self) -> None:
        self._buffer: list[str] = []
        self._depth = 0

    def feed(self, line: str) -> dict[str, Any] | None:
        if not self._buffer and not line.strip():
            return None
        self._buffer.append(line)
        self._depth += line.count("{") - line.count("}")
        if self._depth > 0:
            return None
        text = "".join(self._buffer)
        self._buffer.clear()
        self._depth = 0
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            LOGGER.debug("Skipping malformed sensor output: %r", text[:120])
            return None
        return data if isinstance(data, dict) else None


def sensor_values(payload: dict[str, Any]) -> list[Any] | None:
    """Return the ``values`` list of the first sensor entry in *payload*."""
    for entry in payload.values():
        if isinstance(entry, dict) and isinstance(entry.get("values"), list):
            return entry["values"]
    return None


class _ProcessSubscription:
    def __init__(self, proc: asyncio.subprocess.Process, reader: asyncio.Task[None]) -> None:
        self._proc = proc
        self._reader = reader

    async def close(self) -> None:
        self._reader.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._reader
        await terminate_process(self._proc)


class TermuxSensorStream:
    def __init__(self, kind: SensorKind, sensor_name: str, runner: CommandRunner) -> None:
        self.kind = kind
        self.sensor_name = sensor_name
        self._runner = runner

    def _decode(self, values: list[Any]) -> Vector3 | BarometerReading:
        if self.kind is SensorKind.barometer:
            if not values:
                raise ValueError("Empty pressure sample")
            return BarometerReading(pressure_hpa=float(values[0]))
        return Vector3.from_values(values)

    async def subscribe(
        self,
        listener: Callable[[Any], None],
        interval_ms: int,
        *,
        on_ended: Callable[[str], None] | None = None,
    ) -> _ProcessSubscription:
        proc = await self._runner.spawn(
            ["termux-sensor", "-s", self.sensor_name, "-d", str(int(interval_ms))]
        )
        reader = asyncio.create_task(
            self._read(proc, listener, on_ended), name=f"termux-sensor-{self.kind}"
        )
        LOGGER.info("Subscribed to %s via termux-sensor (pid=%s)", self.sensor_name, proc.pid)
        return _ProcessSubscription(proc, reader)

    async def _read(
        self,
        proc: asyncio.subprocess.Process,
        listener: Callable[[Any], None],
        on_ended: Callable[[str], None] | None = None,
    ) -> None:
        assert proc.stdout is not None
        assembler = JsonObjectAssembler()
        while True:
            raw = await proc.stdout.readline()
            if not raw:
                LOGGER.warning("termux-sensor for %s exited (rc=%s)", self.sensor_name, proc.returncode)
                if on_ended is not None:
                    on_ended(f"termux-sensor exited (rc={proc.returncode})")
                return
            payload = assembler.feed(raw.decode(errors="replace"))
            if payload is None:
                continue
            values = sensor_values(payload)
            if values is None:
                continue
            try:
                sample = self._decode(values)
            except (TypeError, ValueError) as exc:
                LOGGER.debug("Dropping %s sample: %s", self.kind, exc)
                continue
            try:
                listener(sample)
            except Exception:
                LOGGER.warning("Sensor listener failed for %s", self.kind, exc_info=True)


class TermuxPermissionGate:
    """Termux:API prompts on first use; a refusal shows up in command output."""

    def __init__(self, runner: CommandRunner, *, timeout_s: float = 10.0) -> None:
        self._runner = runner
        self._timeout_s = timeout_s

    async def request_location(self) -> bool:
        rc, stdout, stderr = await self._runner.run(
            ["termux-location", "-p", "network", "-r", "last"], timeout=self._timeout_s
        )
        if _mentions_permission(stdout) or _mentions_permission(stderr):
            return False
        if rc != 0:
            LOGGER.debug("Location permission probe rc=%d: %s", rc, stderr.strip())
        return True


class TermuxLocationProvider:
    def __init__(self, runner: CommandRunner, *, provider: str = "gps", timeout_s: float = 30.0) -> None:
        self._runner = runner
        self._provider = provider
        self._timeout_s = timeout_s

    async def current_location(self) -> Coordinates:
        rc, stdout, stderr = await self._runner.run(
            ["termux-location", "-p", self._provider, "-r", "once"], timeout=self._timeout_s
        )
        if rc != 0 or not stdout.strip():
            raise RuntimeError(f"termux-location failed (rc={rc}): {stderr.strip()}")
        return Coordinates.from_dict(_parse_json_output(stdout, what="termux-location"))


class TermuxBatteryProvider:
    def __init__(self, runner: CommandRunner, *, timeout_s: float = 5.0) -> None:
        self._runner = runner
        self._timeout_s = timeout_s

    async def read_battery(self) -> BatteryStatus:
        rc, stdout, stderr = await self._runner.run(["termux-battery-status"], timeout=self._timeout_s)
        if rc != 0:
            raise RuntimeError(f"termux-battery-status failed (rc={rc}): {stderr.strip()}")
        data = _parse_json_output(stdout, what="termux-battery-status")
        percentage = data.get("percentage")
        level = None
        if isinstance(percentage, (int, float)) and not isinstance(percentage, bool):
            level = max(0.0, min(1.0, float(percentage) / 100.0))
        state = _BATTERY_STATES.get(str(data.get("status", "")).upper(), BatteryState.unknown)
        return BatteryStatus(level=level, state=state)


async def tcp_reachable(host: str, port: int, timeout_s: float) -> bool:
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout_s)
    except (OSError, TimeoutError):
        return False
    writer.close()
    with contextlib.suppress(OSError):
        await writer.wait_closed()
    return True


class TermuxNetworkProvider:
    def __init__(
        self,
        runner: CommandRunner,
        *,
        reachability_host: str = "1.1.1.1",
        reachability_port: int = 443,
        timeout_s: float = 5.0,
    ) -> None:
        self._runner = runner
        self._host = reachability_host
        self._port = reachability_port
        self._timeout_s = timeout_s

    async def _wifi_connected(self) -> bool:
        rc, stdout, _ = await self._runner.run(["termux-wifi-connectioninfo"], timeout=self._timeout_s)
        if rc != 0 or not stdout.strip():
            return False
        data = _parse_json_output(stdout, what="termux-wifi-connectioninfo")
        return str(data.get("supplicant_state", "")).upper() == "COMPLETED"

    async def _cellular_generation(self) -> str | None:
        rc, stdout, _ = await self._runner.run(
            ["termux-telephony-deviceinfo"], timeout=self._timeout_s
        )
        if rc != 0 or not stdout.strip():
            return None
        data = _parse_json_output(stdout, what="termux-telephony-deviceinfo")
        if str(data.get("data_state", "")).lower() != "connected":
            return None
        network_type = str(data.get("network_type", "")).lower()
        return _CELLULAR_GENERATIONS.get(network_type, "unknown")

    async def read_network(self) -> NetworkState:
        reachable = await tcp_reachable(self._host, self._port, self._timeout_s)
        if await self._wifi_connected():
            return NetworkState(is_connected=True, is_internet_reachable=reachable, type="wifi")
        generation = await self._cellular_generation()
        if generation is not None:
            return NetworkState(
                is_connected=True,
                is_internet_reachable=reachable,
                type="cellular",
                cellular_generation=generation,
            )
        return NetworkState(
            is_connected=reachable,
            is_internet_reachable=reachable,
            type="unknown" if reachable else "none",
        )


class TermuxMicrophone:
    """``termux-microphone-record`` wrapper; the recording keeps running in the background."""

    file_extension = "m4a"

    def __init__(self, runner: CommandRunner, *, timeout_s: float = 10.0) -> None:
        self._runner = runner
        self._timeout_s = timeout_s

    async def request_permission(self) -> bool:
        return True

    async def configure_mode(self) -> None:
        # Capture already survives screen-off and silent mode under Termux.
        return None

    async def begin(self, path: Path) -> None:
        rc, stdout, stderr = await self._runner.run(
            ["termux-microphone-record", "-f", str(path), "-e", "aac"], timeout=self._timeout_s
        )
        output = f"{stdout} {stderr}"
        if _mentions_permission(output):
            raise PermissionDenied("Microphone permission denied")
        if rc != 0 or "error" in output.lower():
            raise RecorderError(f"termux-microphone-record failed (rc={rc}): {output.strip()}")

    async def end(self) -> None:
        rc, _, stderr = await self._runner.run(
            ["termux-microphone-record", "-q"], timeout=self._timeout_s
        )
        if rc != 0:
            raise RecorderError(f"Stopping termux-microphone-record failed (rc={rc}): {stderr.strip()}")
