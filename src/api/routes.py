"""Service status endpoints."""

from __future__ import annotations

import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from api.dependencies import get_registry
from api.schemas import HealthResponse, ServiceStatusResponse
from config.settings import get_settings
from telephony.session import SessionRegistry

router = APIRouter(tags=["status"])

_STARTED = time.monotonic()


@router.get("/", response_model=ServiceStatusResponse)
async def service_status() -> ServiceStatusResponse:
    return ServiceStatusResponse(
        service=f"{get_settings().business_name} Voice Backend",
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/health", response_model=HealthResponse)
async def health(registry: SessionRegistry = Depends(get_registry)) -> HealthResponse:
    return HealthResponse(
        active_sessions=registry.stats()["active"],
        uptime_seconds=round(time.monotonic() - _STARTED, 1),
    )
