"""Health check endpoint."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter

from .. import __version__
from ..api_models import HealthResponse

if TYPE_CHECKING:
    from ..app import RuntimeState


def create_health_routes(state: RuntimeState) -> APIRouter:
    router = APIRouter()

    @router.get("/api/health", response_model=HealthResponse)
    async def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "version": __version__,
            "session_state": state.session.state.value,
            "sensors": state.sampler.status_dict()["sensors"],
            "ws_connections": state.ws_hub.connection_count,
        }

    return router
