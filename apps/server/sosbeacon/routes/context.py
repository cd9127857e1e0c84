"""Device context and user notice endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter

from ..api_models import ContextResponse, NoticesResponse

if TYPE_CHECKING:
    from ..app import RuntimeState


def create_context_routes(state: RuntimeState) -> APIRouter:
    router = APIRouter()

    @router.get("/api/context", response_model=ContextResponse)
    async def get_context() -> dict[str, Any]:
        return state.probe.snapshot().to_dict()

    @router.post("/api/context/refresh", response_model=ContextResponse)
    async def refresh_context() -> dict[str, Any]:
        context = await state.probe.refresh_all()
        return context.to_dict()

    @router.get("/api/notices", response_model=NoticesResponse)
    async def get_notices() -> dict[str, Any]:
        return {"notices": [notice.to_dict() for notice in state.events.recent_notices()]}

    return router
