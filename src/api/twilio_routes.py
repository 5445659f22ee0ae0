"""Twilio Voice integration.

This module provides:
- Voice webhook returning TwiML that connects the call to a Media Stream.
- Call status callback.
- The Media Stream WebSocket itself, one ``CallOrchestrator`` per connection.
"""

from __future__ import annotations

import logging
from xml.sax.saxutils import quoteattr

from fastapi import APIRouter, Depends, Request, Response, WebSocket, WebSocketDisconnect

from api.dependencies import CallPipeline, get_pipeline
from config.settings import get_settings
from telephony.call_orchestrator import CallOrchestrator

LOGGER = logging.getLogger(__name__)

router = APIRouter(tags=["twilio"])


def _twiml_response(xml: str) -> Response:
    # Twilio expects application/xml
    return Response(content=xml, media_type="application/xml")


def _to_ws_url(http_url: str) -> str:
    if http_url.startswith("https://"):
        return "wss://" + http_url.removeprefix("https://")
    if http_url.startswith("http://"):
        return "ws://" + http_url.removeprefix("http://")
    return http_url


def _media_stream_url(request: Request) -> str:
    settings = get_settings()
    if settings.public_base_url:
        return _to_ws_url(settings.public_base_url.rstrip("/")) + "/media-stream"

    # Behind a proxy the scheme only survives in X-Forwarded-Proto; prefer PUBLIC_BASE_URL.
    host = request.headers.get("host") or request.url.netloc
    proto = request.headers.get("x-forwarded-proto") or request.url.scheme
    scheme = "wss" if proto == "https" else "ws"
    return f"{scheme}://{host}/media-stream"


def _twiml_connect_stream(*, stream_url: str, parameters: dict[str, str]) -> str:
    params = "".join(
        f"<Parameter name={quoteattr(name)} value={quoteattr(value)} />" for name, value in parameters.items()
    )
    return (
        "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
        "<Response>"
        "<Connect>"
        f"<Stream url={quoteattr(stream_url)}>{params}</Stream>"
        "</Connect>"
        "</Response>"
    )


@router.post("/incoming-call")
async def incoming_call(request: Request) -> Response:
    form = await request.form()
    call_sid = str(form.get("CallSid") or "").strip()
    caller = str(form.get("From") or "").strip()

    stream_url = _media_stream_url(request)
    LOGGER.info("Incoming call %s from %s****, streaming to %s", call_sid, caller[:6], stream_url)

    return _twiml_response(
        _twiml_connect_stream(
            stream_url=stream_url,
            parameters={"callSid": call_sid, "callerPhone": caller},
        )
    )


@router.post("/call-status")
async def call_status(request: Request) -> Response:
    form = await request.form()
    LOGGER.info(
        "Call status update: %s status=%s duration=%s",
        form.get("CallSid"),
        form.get("CallStatus"),
        form.get("CallDuration"),
    )
    return Response(status_code=200)


@router.websocket("/media-stream")
async def media_stream(websocket: WebSocket, pipeline: CallPipeline = Depends(get_pipeline)) -> None:
    await websocket.accept()
    LOGGER.info("Media stream connection from %s", websocket.client.host if websocket.client else "unknown")

    orchestrator = CallOrchestrator(
        websocket,
        pipeline.registry,
        transcriber_factory=pipeline.transcriber_factory,
        synthesizer_factory=pipeline.synthesizer_factory,
        responder=pipeline.responder,
        call_control=pipeline.call_control,
    )
    try:
        await orchestrator.run()
    except WebSocketDisconnect:
        LOGGER.info("Media stream disconnected for call %s", orchestrator.call_sid)
