"""In-process event channel between the engine and its presentation layer.

The engine never touches presentation state directly.  It publishes
:class:`EngineEvent` objects; the WebSocket hub, the HTTP API and tests
subscribe.  Listener failures are logged and isolated so one bad consumer
cannot break the publisher.
"""

from __future__ import annotations

import enum
import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .json_utils import utc_now_iso

LOGGER = logging.getLogger(__name__)

_NOTICE_HISTORY = 50


class EventKind(enum.StrEnum):
    state_changed = "state_changed"
    notice = "notice"
    alert = "alert"
    segment_recorded = "segment_recorded"
    upload_finished = "upload_finished"


class NoticeLevel(enum.StrEnum):
    info = "info"
    warning = "warning"
    error = "error"


@dataclass(slots=True)
class Notice:
    """User-facing message; ``action`` hints at a follow-up screen."""

    code: str
    message: str
    level: NoticeLevel = NoticeLevel.error
    action: str | None = None
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "level": self.level.value,
            "action": self.action,
            "timestamp": self.timestamp,
        }


@dataclass(slots=True)
class EngineEvent:
    kind: EventKind
    data: dict[str, Any] = field(default_factory=dict)
    notice: Notice | None = None
    mono_ts: float = field(default_factory=time.monotonic)


Listener = Callable[[EngineEvent], None]


class EventChannel:
    def __init__(self, notice_history: int = _NOTICE_HISTORY) -> None:
        self._listeners: dict[int, Listener] = {}
        self._next_id = 0
        self._notices: deque[Notice] = deque(maxlen=max(1, notice_history))

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a callable that unsubscribes it."""
        token = self._next_id
        self._next_id += 1
        self._listeners[token] = listener

        def _unsubscribe() -> None:
            self._listeners.pop(token, None)

        return _unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def publish(self, event: EngineEvent) -> None:
        if event.notice is not None:
            self._notices.append(event.notice)
        for listener in list(self._listeners.values()):
            try:
                listener(event)
            except Exception:
                LOGGER.warning("Event listener failed for %s", event.kind, exc_info=True)

    def emit(self, kind: EventKind, **data: Any) -> None:
        self.publish(EngineEvent(kind=kind, data=data))

    def notify(
        self,
        code: str,
        message: str,
        *,
        level: NoticeLevel = NoticeLevel.error,
        action: str | None = None,
    ) -> Notice:
        notice = Notice(code=code, message=message, level=level, action=action)
        self.publish(EngineEvent(kind=EventKind.notice, notice=notice))
        return notice

    def recent_notices(self) -> list[Notice]:
        return list(self._notices)
