"""Runtime orchestration: device -> sampler / probe -> session -> WS/API.

Boundary note for maintainers:
- Keep this module focused on wiring and lifecycle, not engine logic.
- Session rules belong in `session.py`; detectors in `sensors/`.
- API schemas belong in `api_models.py`.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import uvicorn
from fastapi import FastAPI

from . import __version__
from .audio_recorder import AudioRecorder
from .backend_client import BackendClient
from .config import AppConfig, load_config
from .context_probe import AddressResolver, ContextProbe
from .credentials import CredentialStore
from .device import DeviceBundle, build_device
from .events import EventChannel
from .geocoding import ReverseGeocoder
from .kv_store import JsonFileBackend
from .recording_store import RecordingStore
from .routes import create_router
from .sensors import AlertBoard, SensorSampler
from .session import EmergencySession
from .ws_hub import WebSocketHub

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class RuntimeState:
    config: AppConfig
    device: DeviceBundle
    events: EventChannel
    sampler: SensorSampler
    probe: ContextProbe
    recorder: AudioRecorder
    store: RecordingStore
    credentials: CredentialStore
    backend: BackendClient
    session: EmergencySession
    ws_hub: WebSocketHub
    tasks: list[asyncio.Task] = field(default_factory=list)

    def build_ws_payload(self) -> dict[str, Any]:
        sampler_status = self.sampler.status_dict()
        return {
            "version": __version__,
            "session": self.session.projection(),
            "alerts": sampler_status["alerts"],
            "sensors": sampler_status["sensors"],
            "readings": sampler_status["readings"],
            "context": self.probe.snapshot().to_dict(),
            "notices": [n.to_dict() for n in self.events.recent_notices()[-10:]],
        }


def build_runtime(config: AppConfig, device: DeviceBundle | None = None) -> RuntimeState:
    device = device or build_device(config)
    events = EventChannel()
    alerts = AlertBoard()
    sampler = SensorSampler(
        accelerometer=device.accelerometer,
        gyroscope=device.gyroscope,
        barometer=device.barometer,
        alerts=alerts,
        events=events,
    )
    resolver: AddressResolver | None = None
    if config.geocoding.enabled:
        resolver = ReverseGeocoder(config.geocoding.api_key, base_url=config.geocoding.base_url)
    probe = ContextProbe(
        permissions=device.permissions,
        location=device.location,
        battery=device.battery,
        network=device.network,
        address_resolver=resolver,
    )
    kv = JsonFileBackend(config.storage.data_dir)
    store = RecordingStore(kv)
    credentials = CredentialStore(kv)
    backend = BackendClient(
        config.backend.base_url,
        credentials,
        timeout_s=config.backend.timeout_s,
    )
    recorder = AudioRecorder(device.microphone, config.storage.recordings_dir)
    session = EmergencySession(
        recorder=recorder,
        store=store,
        backend=backend,
        probe=probe,
        alerts=sampler.alert_state,
        events=events,
        rotation_interval_s=config.session.rotation_interval_s,
        upload_drain_timeout_s=config.session.upload_drain_timeout_s,
    )
    ws_hub = WebSocketHub()
    events.subscribe(ws_hub.request_push)
    return RuntimeState(
        config=config,
        device=device,
        events=events,
        sampler=sampler,
        probe=probe,
        recorder=recorder,
        store=store,
        credentials=credentials,
        backend=backend,
        session=session,
        ws_hub=ws_hub,
    )


def create_app(
    config_path: Path | None = None,
    *,
    config: AppConfig | None = None,
    device: DeviceBundle | None = None,
) -> FastAPI:
    config = config or load_config(config_path)
    runtime = build_runtime(config, device)

    async def start_runtime() -> None:
        entries = await asyncio.to_thread(runtime.store.load)
        LOGGER.info("Loaded %d persisted recording(s)", len(entries))
        await runtime.sampler.start(config.sensors.interval_ms)
        runtime.tasks = [
            asyncio.create_task(
                runtime.probe.run(config.context.poll_interval_s), name="context-poll"
            ),
            asyncio.create_task(
                runtime.ws_hub.run(config.ui.push_hz, runtime.build_ws_payload),
                name="ws-broadcast",
            ),
        ]

    async def stop_runtime() -> None:
        try:
            await runtime.session.close()
        except Exception:
            LOGGER.warning("Error closing emergency session", exc_info=True)
        await runtime.sampler.stop()
        for task in runtime.tasks:
            task.cancel()
        await asyncio.gather(*runtime.tasks, return_exceptions=True)
        runtime.tasks.clear()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await start_runtime()
        try:
            yield
        finally:
            await stop_runtime()

    app = FastAPI(title="sosbeacon", version=__version__, lifespan=lifespan)
    app.state.runtime = runtime
    app.include_router(create_router(runtime))
    return app


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the sosbeacon emergency agent")
    parser.add_argument("--config", type=Path, default=None, help="Path to config YAML")
    args = parser.parse_args()

    config = load_config(args.config)
    level = config.logging.level
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    runtime_app = create_app(config=config)
    runtime: RuntimeState = runtime_app.state.runtime
    uvicorn.run(
        runtime_app,
        host=runtime.config.server.host,
        port=runtime.config.server.port,
        log_level=level.lower(),
    )


if __name__ == "__main__":
    main()
