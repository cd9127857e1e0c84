"""Minimal async HTTP transport over :mod:`urllib.request`.

Requests run in a worker thread (``asyncio.to_thread``) so the event loop
never blocks on the network.  Non-2xx responses are returned, not raised;
connection-level failures raise ``OSError`` (``URLError`` is a subclass).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib.error import HTTPError
from urllib.parse import urlsplit
from urllib.request import Request, urlopen

from .json_utils import safe_json_loads

LOGGER = logging.getLogger(__name__)

_LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})


def validate_url(url: str) -> None:
    """Refuse plain-HTTP URLs unless they point at the local machine."""
    parts = urlsplit(url)
    if parts.scheme == "https":
        return
    if parts.scheme == "http" and (parts.hostname or "") in _LOCAL_HOSTS:
        return
    raise ValueError(f"Refusing non-HTTPS URL: {url}")


@dataclass(slots=True)
class HttpResponse:
    status: int
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any | None:
        if not self.body:
            return None
        return safe_json_loads(self.body.decode("utf-8", errors="replace"), context="HTTP body")


class HttpTransport(Protocol):
    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        body: bytes | None = None,
        timeout_s: float = 30.0,
    ) -> HttpResponse: ...


class UrllibTransport:
    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        body: bytes | None = None,
        timeout_s: float = 30.0,
    ) -> HttpResponse:
        validate_url(url)
        return await asyncio.to_thread(self._send, method, url, dict(headers or {}), body, timeout_s)

    @staticmethod
    def _send(
        method: str,
        url: str,
        headers: dict[str, str],
        body: bytes | None,
        timeout_s: float,
    ) -> HttpResponse:
        req = Request(url, data=body, headers=headers, method=method)
        try:
            with urlopen(req, timeout=timeout_s) as resp:  # noqa: S310
                return HttpResponse(
                    status=int(resp.status),
                    body=resp.read(),
                    headers=dict(resp.headers.items()),
                )
        except HTTPError as exc:
            payload = exc.read() if exc.fp is not None else b""
            LOGGER.debug("%s %s -> HTTP %d", method, url, exc.code)
            exc_headers = dict(exc.headers.items()) if exc.headers is not None else {}
            return HttpResponse(status=int(exc.code), body=payload, headers=exc_headers)
