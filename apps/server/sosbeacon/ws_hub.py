from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Callable
from typing import Any

from fastapi import WebSocket

from .json_utils import sanitize_for_json

LOGGER = logging.getLogger(__name__)

_SEND_TIMEOUT_S: float = 0.5
"""Per-connection send timeout; connections exceeding this are dropped."""

_SEND_ERROR_LOG_INTERVAL_S: float = 10.0
"""Minimum interval between logged send-error warnings to avoid log spam."""

_ERROR_PAYLOAD: str = json.dumps({"error": "payload_build_failed"}, separators=(",", ":"))


class WebSocketHub:
    """Pushes the engine projection to every connected WebSocket client.

    The push loop runs at a fixed rate and wakes early when :meth:`request_push`
    is called (engine events), so state changes reach clients promptly.
    """

    def __init__(self) -> None:
        self._connections: dict[int, WebSocket] = {}
        self._lock = asyncio.Lock()
        self._wake = asyncio.Event()
        self._send_timeout_s = _SEND_TIMEOUT_S
        self._last_send_error_log_ts = 0.0
        self._send_error_log_interval_s = _SEND_ERROR_LOG_INTERVAL_S

    async def add(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._connections[id(websocket)] = websocket

    async def remove(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._connections.pop(id(websocket), None)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def request_push(self, *_: Any) -> None:
        self._wake.set()

    async def _snapshot(self) -> list[WebSocket]:
        async with self._lock:
            return list(self._connections.values())

    @staticmethod
    def _encode(payload_builder: Callable[[], dict[str, Any]]) -> str:
        try:
            cleaned, had_non_finite = sanitize_for_json(payload_builder())
            if had_non_finite:
                LOGGER.warning("WebSocket payload contained NaN/Inf values; replaced with null.")
            return json.dumps(cleaned, separators=(",", ":"), allow_nan=False)
        except Exception:
            LOGGER.error("WebSocket payload build failed; sending error payload.", exc_info=True)
            return _ERROR_PAYLOAD

    async def broadcast(self, payload_builder: Callable[[], dict[str, Any]]) -> None:
        conns = await self._snapshot()
        if not conns:
            return
        text = self._encode(payload_builder)

        async def _send(ws: WebSocket) -> WebSocket | None:
            try:
                await asyncio.wait_for(ws.send_text(text), timeout=self._send_timeout_s)
                return None
            except Exception:
                now = asyncio.get_running_loop().time()
                if (now - self._last_send_error_log_ts) >= self._send_error_log_interval_s:
                    self._last_send_error_log_ts = now
                    LOGGER.warning(
                        "WebSocket broadcast send failed; connection will be removed.",
                        exc_info=True,
                    )
                return ws

        dead = await asyncio.gather(*(_send(ws) for ws in conns))
        for ws in dead:
            if ws is not None:
                await self.remove(ws)

    async def run(self, hz: float, payload_builder: Callable[[], dict[str, Any]]) -> None:
        interval = 1.0 / max(0.2, float(hz))
        consecutive_failures = 0
        max_consecutive_failures = 10
        while True:
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._wake.wait(), timeout=interval)
            self._wake.clear()
            try:
                await self.broadcast(payload_builder)
                consecutive_failures = 0
            except Exception:
                consecutive_failures += 1
                if consecutive_failures >= max_consecutive_failures:
                    LOGGER.error(
                        "WebSocket broadcast tick failed %d consecutive times; backing off.",
                        consecutive_failures,
                        exc_info=True,
                    )
                    await asyncio.sleep(interval * 5)
                else:
                    LOGGER.warning("WebSocket broadcast tick failed; will retry.", exc_info=True)
