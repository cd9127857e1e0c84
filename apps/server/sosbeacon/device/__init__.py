"""Platform collaborators (sensors, permissions, probes, microphone)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from ..audio_recorder import RecorderBackend
from ..context_probe import BatteryProvider, LocationProvider, NetworkProvider, PermissionGate
from ..sensors.sampler import SensorKind, SensorStream
from .runner import CommandRunner
from .simulated import (
    SimulatedBatteryProvider,
    SimulatedLocationProvider,
    SimulatedMicrophone,
    SimulatedNetworkProvider,
    SimulatedPermissionGate,
    SimulatedProfile,
    SimulatedSensorStream,
)
from .termux import (
    DEFAULT_SENSOR_NAMES,
    TermuxBatteryProvider,
    TermuxLocationProvider,
    TermuxMicrophone,
    TermuxNetworkProvider,
    TermuxPermissionGate,
    TermuxSensorStream,
)

if TYPE_CHECKING:
    from ..config import AppConfig


@dataclass(slots=True)
class DeviceBundle:
    accelerometer: SensorStream | None
    gyroscope: SensorStream | None
    barometer: SensorStream | None
    permissions: PermissionGate
    location: LocationProvider
    battery: BatteryProvider
    network: NetworkProvider
    microphone: RecorderBackend


def build_termux_device(config: AppConfig, runner: CommandRunner | None = None) -> DeviceBundle:
    runner = runner or CommandRunner()
    names = {**DEFAULT_SENSOR_NAMES, **config.device.termux_sensor_names}
    return DeviceBundle(
        accelerometer=TermuxSensorStream(SensorKind.accelerometer, names[SensorKind.accelerometer], runner),
        gyroscope=TermuxSensorStream(SensorKind.gyroscope, names[SensorKind.gyroscope], runner),
        barometer=TermuxSensorStream(SensorKind.barometer, names[SensorKind.barometer], runner),
        permissions=TermuxPermissionGate(runner),
        location=TermuxLocationProvider(runner),
        battery=TermuxBatteryProvider(runner),
        network=TermuxNetworkProvider(
            runner,
            reachability_host=config.context.reachability_host,
            reachability_port=config.context.reachability_port,
        ),
        microphone=TermuxMicrophone(runner),
    )


def build_simulated_device(config: AppConfig) -> DeviceBundle:
    sim = config.device.simulated
    profile = SimulatedProfile(
        seed=sim.seed,
        fall_every_s=sim.fall_every_s,
        altitude_step_every_s=sim.altitude_step_every_s,
        latitude=sim.latitude,
        longitude=sim.longitude,
    )
    rng = np.random.default_rng(profile.seed)
    return DeviceBundle(
        accelerometer=SimulatedSensorStream(SensorKind.accelerometer, profile, rng),
        gyroscope=SimulatedSensorStream(SensorKind.gyroscope, profile, rng),
        barometer=SimulatedSensorStream(SensorKind.barometer, profile, rng),
        permissions=SimulatedPermissionGate(),
        location=SimulatedLocationProvider(profile, rng),
        battery=SimulatedBatteryProvider(profile),
        network=SimulatedNetworkProvider(),
        microphone=SimulatedMicrophone(rng),
    )


def build_device(config: AppConfig) -> DeviceBundle:
    if config.device.profile == "simulated":
        return build_simulated_device(config)
    return build_termux_device(config)


__all__ = ["DeviceBundle", "build_device", "build_simulated_device", "build_termux_device"]
