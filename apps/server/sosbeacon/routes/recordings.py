"""Persisted recording list endpoints."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, HTTPException

from ..api_models import DeleteRecordingResponse, RecordingsResponse

if TYPE_CHECKING:
    from ..app import RuntimeState


def create_recordings_routes(state: RuntimeState) -> APIRouter:
    router = APIRouter()

    @router.get("/api/recordings", response_model=RecordingsResponse)
    async def list_recordings() -> dict[str, Any]:
        return {"recordings": [entry.to_dict() for entry in state.store.entries()]}

    @router.delete("/api/recordings/{timestamp}", response_model=DeleteRecordingResponse)
    async def delete_recording(timestamp: str) -> dict[str, Any]:
        removed = await asyncio.to_thread(state.store.remove, timestamp)
        if not removed:
            raise HTTPException(status_code=404, detail="Recording not found")
        return {"status": "deleted", "timestamp": timestamp}

    return router
