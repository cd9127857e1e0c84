"""Route package: assembles domain-specific sub-routers into one APIRouter.

Each sub-module defines a ``create_*_routes(state)`` function that returns
an ``APIRouter`` scoped to a single domain.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter

from .context import create_context_routes
from .health import create_health_routes
from .recordings import create_recordings_routes
from .session import create_session_routes
from .websocket import create_websocket_routes

if TYPE_CHECKING:
    from ..app import RuntimeState


def create_router(state: RuntimeState) -> APIRouter:
    """Assemble all domain-specific route groups into one router."""
    router = APIRouter()
    router.include_router(create_health_routes(state))
    router.include_router(create_session_routes(state))
    router.include_router(create_recordings_routes(state))
    router.include_router(create_context_routes(state))
    router.include_router(create_websocket_routes(state))
    return router
