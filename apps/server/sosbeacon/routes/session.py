"""Emergency session control endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter

from ..api_models import SessionResponse, SessionStartResponse, SessionStopResponse

if TYPE_CHECKING:
    from ..app import RuntimeState


def create_session_routes(state: RuntimeState) -> APIRouter:
    router = APIRouter()

    @router.get("/api/session", response_model=SessionResponse)
    async def get_session() -> dict[str, Any]:
        return state.session.projection()

    @router.post("/api/session/start", response_model=SessionStartResponse)
    async def start_session() -> dict[str, Any]:
        result = await state.session.start()
        return {
            "started": result.started,
            "reason": result.reason,
            "state": state.session.state.value,
        }

    @router.post("/api/session/stop", response_model=SessionStopResponse)
    async def stop_session() -> dict[str, Any]:
        result = await state.session.stop()
        return {
            "stopped": result.stopped,
            "reason": result.reason,
            "state": state.session.state.value,
            "final_segment": result.final_segment.to_dict() if result.final_segment else None,
        }

    return router
