from __future__ import annotations

import logging
import os
from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .constants import (
    DEFAULT_CONTEXT_POLL_INTERVAL_S,
    DEFAULT_ROTATION_INTERVAL_S,
    DEFAULT_SENSOR_INTERVAL_MS,
    DEFAULT_UPLOAD_DRAIN_TIMEOUT_S,
)
from .geocoding import DEFAULT_GEOCODING_URL
from .http_transport import validate_url
from .sensors.sampler import SensorKind

SERVER_DIR = Path(__file__).resolve().parents[1]
"""Root of the ``apps/server/`` package tree."""

LOGGER = logging.getLogger(__name__)

GEOCODING_API_KEY_ENV = "SOSBEACON_GEOCODING_API_KEY"

VALID_DEVICE_PROFILES = ("termux", "simulated")
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

DEFAULT_CONFIG: dict[str, Any] = {
    "server": {"host": "127.0.0.1", "port": 8765},
    "backend": {"base_url": "https://sos-beacon.example.org", "timeout_s": 30.0},
    "geocoding": {"enabled": True, "base_url": DEFAULT_GEOCODING_URL, "api_key": ""},
    "sensors": {"interval_ms": DEFAULT_SENSOR_INTERVAL_MS},
    "context": {
        "poll_interval_s": DEFAULT_CONTEXT_POLL_INTERVAL_S,
        "reachability_host": "1.1.1.1",
        "reachability_port": 443,
    },
    "session": {
        "rotation_interval_s": DEFAULT_ROTATION_INTERVAL_S,
        "upload_drain_timeout_s": DEFAULT_UPLOAD_DRAIN_TIMEOUT_S,
    },
    "storage": {"data_dir": "data", "recordings_dir": "data/recordings"},
    "device": {
        "profile": "termux",
        "termux_sensor_names": {},
        "simulated": {
            "seed": None,
            "fall_every_s": 0.0,
            "altitude_step_every_s": 0.0,
            "latitude": 52.3702,
            "longitude": 4.8952,
        },
    },
    "logging": {"level": "INFO"},
    "ui": {"push_hz": 2},
}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _resolve_config_path(path_text: str, config_path: Path) -> Path:
    path = Path(path_text).expanduser()
    if path.is_absolute():
        return path
    return config_path.resolve().parent / path


def _clamp_min(section: str, obj: Any, name: str, minimum: float) -> None:
    val = getattr(obj, name)
    if val < minimum:
        LOGGER.warning("%s.%s=%s is below minimum %s; clamped", section, name, val, minimum)
        object.__setattr__(obj, name, type(val)(minimum))


@dataclass(slots=True)
class ServerConfig:
    host: str
    port: int

    def __post_init__(self) -> None:
        if not isinstance(self.port, int) or not (1 <= self.port <= 65535):
            raise ValueError(f"server.port must be 1-65535, got {self.port!r}")


@dataclass(slots=True)
class BackendConfig:
    base_url: str
    timeout_s: float

    def __post_init__(self) -> None:
        validate_url(self.base_url)
        self.base_url = self.base_url.rstrip("/")
        _clamp_min("backend", self, "timeout_s", 1.0)


@dataclass(slots=True)
class GeocodingConfig:
    enabled: bool
    base_url: str
    api_key: str

    def __post_init__(self) -> None:
        if self.enabled and not self.api_key:
            LOGGER.warning(
                "geocoding.api_key is empty (set %s); reverse geocoding disabled",
                GEOCODING_API_KEY_ENV,
            )
            self.enabled = False
        if self.enabled:
            validate_url(self.base_url)


@dataclass(slots=True)
class SensorsConfig:
    interval_ms: int

    def __post_init__(self) -> None:
        _clamp_min("sensors", self, "interval_ms", 10)


@dataclass(slots=True)
class ContextConfig:
    poll_interval_s: float
    reachability_host: str
    reachability_port: int

    def __post_init__(self) -> None:
        _clamp_min("context", self, "poll_interval_s", 1.0)
        if not (1 <= self.reachability_port <= 65535):
            raise ValueError(
                f"context.reachability_port must be 1-65535, got {self.reachability_port!r}"
            )


@dataclass(slots=True)
class SessionConfig:
    rotation_interval_s: float
    upload_drain_timeout_s: float

    def __post_init__(self) -> None:
        _clamp_min("session", self, "rotation_interval_s", 5.0)
        _clamp_min("session", self, "upload_drain_timeout_s", 0.0)


@dataclass(slots=True)
class StorageConfig:
    data_dir: Path
    recordings_dir: Path


@dataclass(slots=True)
class SimulatedDeviceConfig:
    seed: int | None
    fall_every_s: float
    altitude_step_every_s: float
    latitude: float
    longitude: float


@dataclass(slots=True)
class DeviceConfig:
    profile: str
    simulated: SimulatedDeviceConfig
    termux_sensor_names: dict[SensorKind, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.profile not in VALID_DEVICE_PROFILES:
            raise ValueError(
                f"device.profile must be one of {', '.join(VALID_DEVICE_PROFILES)}, "
                f"got {self.profile!r}"
            )


@dataclass(slots=True)
class LoggingConfig:
    level: str

    def __post_init__(self) -> None:
        level = str(self.level).upper()
        if level not in VALID_LOG_LEVELS:
            LOGGER.warning("logging.level=%r is not recognised; using INFO", self.level)
            level = "INFO"
        self.level = level


@dataclass(slots=True)
class UIConfig:
    push_hz: float

    def __post_init__(self) -> None:
        _clamp_min("ui", self, "push_hz", 0.2)


@dataclass(slots=True)
class AppConfig:
    server: ServerConfig
    backend: BackendConfig
    geocoding: GeocodingConfig
    sensors: SensorsConfig
    context: ContextConfig
    session: SessionConfig
    storage: StorageConfig
    device: DeviceConfig
    logging: LoggingConfig
    ui: UIConfig
    config_path: Path


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a YAML object at the top level.")
        return data


def _sensor_names(raw: Any) -> dict[SensorKind, str]:
    if not isinstance(raw, dict):
        return {}
    names: dict[SensorKind, str] = {}
    for key, value in raw.items():
        try:
            kind = SensorKind(str(key))
        except ValueError:
            LOGGER.warning("device.termux_sensor_names: unknown sensor %r ignored", key)
            continue
        if isinstance(value, str) and value.strip():
            names[kind] = value.strip()
    return names


def documented_default_config() -> dict[str, Any]:
    return deepcopy(DEFAULT_CONFIG)


def load_config(config_path: Path | None = None) -> AppConfig:
    path = config_path or (SERVER_DIR / "config.yaml")
    path = path.resolve()
    merged = _deep_merge(DEFAULT_CONFIG, _read_config_file(path))

    geocoding_cfg = merged["geocoding"]
    api_key = os.environ.get(GEOCODING_API_KEY_ENV, "").strip() or str(
        geocoding_cfg.get("api_key") or ""
    )
    sim_cfg = merged["device"].get("simulated") or {}
    sim_defaults = DEFAULT_CONFIG["device"]["simulated"]
    seed_raw = sim_cfg.get("seed", sim_defaults["seed"])

    app_config = AppConfig(
        server=ServerConfig(
            host=str(merged["server"]["host"]),
            port=int(merged["server"]["port"]),
        ),
        backend=BackendConfig(
            base_url=str(merged["backend"]["base_url"]),
            timeout_s=float(merged["backend"]["timeout_s"]),
        ),
        geocoding=GeocodingConfig(
            enabled=bool(geocoding_cfg.get("enabled", True)),
            base_url=str(geocoding_cfg.get("base_url") or DEFAULT_GEOCODING_URL),
            api_key=api_key,
        ),
        sensors=SensorsConfig(interval_ms=int(merged["sensors"]["interval_ms"])),
        context=ContextConfig(
            poll_interval_s=float(merged["context"]["poll_interval_s"]),
            reachability_host=str(merged["context"]["reachability_host"]),
            reachability_port=int(merged["context"]["reachability_port"]),
        ),
        session=SessionConfig(
            rotation_interval_s=float(merged["session"]["rotation_interval_s"]),
            upload_drain_timeout_s=float(merged["session"]["upload_drain_timeout_s"]),
        ),
        storage=StorageConfig(
            data_dir=_resolve_config_path(str(merged["storage"]["data_dir"]), path),
            recordings_dir=_resolve_config_path(str(merged["storage"]["recordings_dir"]), path),
        ),
        device=DeviceConfig(
            profile=str(merged["device"]["profile"]),
            simulated=SimulatedDeviceConfig(
                seed=int(seed_raw) if seed_raw is not None else None,
                fall_every_s=float(sim_cfg.get("fall_every_s", sim_defaults["fall_every_s"])),
                altitude_step_every_s=float(
                    sim_cfg.get("altitude_step_every_s", sim_defaults["altitude_step_every_s"])
                ),
                latitude=float(sim_cfg.get("latitude", sim_defaults["latitude"])),
                longitude=float(sim_cfg.get("longitude", sim_defaults["longitude"])),
            ),
            termux_sensor_names=_sensor_names(merged["device"].get("termux_sensor_names")),
        ),
        logging=LoggingConfig(level=str(merged["logging"]["level"])),
        ui=UIConfig(push_hz=float(merged["ui"]["push_hz"])),
        config_path=path,
    )
    LOGGER.info(
        "Loaded config=%s device=%s data_dir=%s recordings_dir=%s",
        app_config.config_path,
        app_config.device.profile,
        app_config.storage.data_dir,
        app_config.storage.recordings_dir,
    )
    return app_config
