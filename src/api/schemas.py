"""API-facing Pydantic models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class ServiceStatusResponse(BaseModel):
    status: str = "ok"
    service: str
    timestamp: datetime


class HealthResponse(BaseModel):
    status: str = "healthy"
    active_sessions: int = Field(serialization_alias="activeSessions")
    uptime_seconds: float = Field(serialization_alias="uptime")
