"""Device context snapshot: location + address, battery, network.

Every ``refresh_*`` method is independently retryable and degrades to an
"unknown" value instead of raising, so a failing probe never aborts the
caller (the pre-upload refresh in particular).
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass
from typing import Protocol

from .constants import (
    ADDRESS_FETCH_FAILED,
    ADDRESS_NOT_FOUND,
    DEFAULT_CONTEXT_POLL_INTERVAL_S,
    LOCATION_FETCH_FAILED,
    LOCATION_PERMISSION_DENIED,
)
from .domain_models import BatteryStatus, Coordinates, DeviceContext, NetworkState

LOGGER = logging.getLogger(__name__)


class PermissionGate(Protocol):
    async def request_location(self) -> bool: ...


class LocationProvider(Protocol):
    async def current_location(self) -> Coordinates: ...


class AddressResolver(Protocol):
    async def resolve(self, latitude: float, longitude: float) -> str | None: ...


class BatteryProvider(Protocol):
    async def read_battery(self) -> BatteryStatus: ...


class NetworkProvider(Protocol):
    async def read_network(self) -> NetworkState: ...


class LocationStatus(enum.StrEnum):
    ok = "ok"
    permission_denied = "permission_denied"
    failed = "failed"


@dataclass(frozen=True, slots=True)
class LocationResult:
    status: LocationStatus
    location: Coordinates | None = None
    address: str | None = None
    error: str | None = None


class ContextProbe:
    def __init__(
        self,
        *,
        permissions: PermissionGate,
        location: LocationProvider,
        battery: BatteryProvider,
        network: NetworkProvider,
        address_resolver: AddressResolver | None = None,
    ) -> None:
        self._permissions = permissions
        self._location = location
        self._battery = battery
        self._network = network
        self._address_resolver = address_resolver
        self._context = DeviceContext()
        self.last_refresh_mono_s: float | None = None

    def snapshot(self) -> DeviceContext:
        return self._context

    async def refresh_location(self) -> LocationResult:
        try:
            granted = await self._permissions.request_location()
        except Exception:
            LOGGER.warning("Location permission request failed", exc_info=True)
            granted = False
        if not granted:
            LOGGER.warning("Location permission denied")
            self._context = self._context.evolve(
                location=None, address=None, location_error=LOCATION_PERMISSION_DENIED
            )
            return LocationResult(LocationStatus.permission_denied, error=LOCATION_PERMISSION_DENIED)

        try:
            coords = await self._location.current_location()
        except Exception as exc:
            LOGGER.warning("Location fetch failed: %s", exc)
            self._context = self._context.evolve(location_error=LOCATION_FETCH_FAILED)
            return LocationResult(
                LocationStatus.failed,
                location=self._context.location,
                address=self._context.address,
                error=LOCATION_FETCH_FAILED,
            )

        address = await self._resolve_address(coords)
        self._context = self._context.evolve(location=coords, address=address, location_error=None)
        return LocationResult(LocationStatus.ok, location=coords, address=address)

    async def _resolve_address(self, coords: Coordinates) -> str | None:
        if self._address_resolver is None:
            return None
        try:
            address = await self._address_resolver.resolve(coords.latitude, coords.longitude)
        except Exception as exc:
            LOGGER.warning("Reverse geocoding failed: %s", exc)
            return ADDRESS_FETCH_FAILED
        return address if address else ADDRESS_NOT_FOUND

    async def refresh_battery(self) -> BatteryStatus:
        try:
            battery = await self._battery.read_battery()
        except Exception as exc:
            LOGGER.warning("Battery read failed: %s", exc)
            battery = BatteryStatus(level=None)
        self._context = self._context.evolve(battery=battery)
        return battery

    async def refresh_network(self) -> NetworkState:
        try:
            network = await self._network.read_network()
        except Exception as exc:
            LOGGER.warning("Network probe failed, assuming offline: %s", exc)
            network = NetworkState.disconnected()
        self._context = self._context.evolve(network=network)
        return network

    async def refresh_all(self) -> DeviceContext:
        """Refresh the three probes concurrently and return the new snapshot."""
        await asyncio.gather(self.refresh_location(), self.refresh_battery(), self.refresh_network())
        self.last_refresh_mono_s = time.monotonic()
        return self._context

    async def run(self, interval_s: float = DEFAULT_CONTEXT_POLL_INTERVAL_S) -> None:
        """Poll every *interval_s* until cancelled."""
        interval_s = max(1.0, float(interval_s))
        while True:
            try:
                await self.refresh_all()
            except Exception:
                LOGGER.warning("Context poll failed; will retry.", exc_info=True)
            await asyncio.sleep(interval_s)
