"""Pydantic response models for the local sosbeacon HTTP API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict


class HealthResponse(BaseModel):
    status: str
    version: str
    session_state: str
    sensors: dict[str, Any]
    ws_connections: int


class SessionResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    state: str
    isRecording: bool


class RecordingSegmentResponse(BaseModel):
    uri: str
    timestamp: str


class SessionStartResponse(BaseModel):
    started: bool
    reason: str | None = None
    state: str


class SessionStopResponse(BaseModel):
    stopped: bool
    reason: str | None = None
    state: str
    final_segment: RecordingSegmentResponse | None = None


class RecordingsResponse(BaseModel):
    recordings: list[RecordingSegmentResponse]


class DeleteRecordingResponse(BaseModel):
    status: str
    timestamp: str


class ContextResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    location: dict[str, float] | None = None
    address: str | None = None
    battery: dict[str, Any] | None = None
    networkInfo: dict[str, Any] | None = None
    locationError: str | None = None


class NoticeResponse(BaseModel):
    code: str
    message: str
    level: str
    action: str | None = None
    timestamp: str


class NoticesResponse(BaseModel):
    notices: list[NoticeResponse]
