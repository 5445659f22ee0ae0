"""Entry point for the realtime phone assistant service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from api.routes import router as status_router
from api.twilio_routes import router as twilio_router
from config.settings import get_settings

LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    missing = settings.missing_credentials()
    if missing:
        LOGGER.warning("Missing configuration: %s. Calls will fail until these are set.", ", ".join(missing))
    LOGGER.info("Voice backend ready (environment: %s)", settings.environment)
    yield


settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(
    title=f"{settings.business_name} Voice Backend",
    description="Realtime phone assistant: Twilio Media Streams, streaming STT, LLM and TTS.",
    lifespan=lifespan,
)


app.include_router(status_router)
app.include_router(twilio_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=settings.port)
