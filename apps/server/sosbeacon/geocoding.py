"""Reverse geocoding: coordinates -> formatted street address.

Speaks the Google Geocoding JSON format (``results[0].formatted_address``).
``resolve`` returns ``None`` when the service has no address for the point
and raises :class:`GeocodingError` for transport or service failures.
"""

from __future__ import annotations

import logging
from urllib.parse import urlencode

from .http_transport import HttpTransport, UrllibTransport

LOGGER = logging.getLogger(__name__)

DEFAULT_GEOCODING_URL = "https://maps.googleapis.com/maps/api/geocode/json"

_NO_RESULT_STATUSES = frozenset({"ZERO_RESULTS"})


class GeocodingError(Exception):
    """Reverse geocoding failed (network, quota, malformed response)."""


class ReverseGeocoder:
    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_GEOCODING_URL,
        transport: HttpTransport | None = None,
        timeout_s: float = 10.0,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url
        self._transport = transport or UrllibTransport()
        self._timeout_s = timeout_s

    async def resolve(self, latitude: float, longitude: float) -> str | None:
        query = urlencode({"latlng": f"{latitude},{longitude}", "key": self._api_key})
        url = f"{self._base_url}?{query}"
        try:
            response = await self._transport.request("GET", url, timeout_s=self._timeout_s)
        except (OSError, ValueError) as exc:
            raise GeocodingError(f"Geocoding request failed: {exc}") from exc
        if not response.ok:
            raise GeocodingError(f"Geocoding service returned HTTP {response.status}")
        data = response.json()
        if not isinstance(data, dict):
            raise GeocodingError("Geocoding response is not a JSON object")
        status = data.get("status")
        results = data.get("results")
        if status in _NO_RESULT_STATUSES or not results:
            return None
        if status not in (None, "OK"):
            raise GeocodingError(f"Geocoding service status {status}: {data.get('error_message', '')}")
        first = results[0] if isinstance(results, list) else None
        address = first.get("formatted_address") if isinstance(first, dict) else None
        if not isinstance(address, str) or not address.strip():
            return None
        return address.strip()


class StaticAddressResolver:
    """Resolver for offline and simulated runs: always the same answer."""

    def __init__(self, address: str | None) -> None:
        self.address = address
        self.calls: int = 0

    async def resolve(self, latitude: float, longitude: float) -> str | None:
        self.calls += 1
        return self.address
