"""Twilio Media Streams wire format.

Inbound events: ``connected``, ``start``, ``media``, ``mark``, ``stop``.
Outbound events: ``media``, ``mark``, ``clear``. Audio payloads are base64
mu-law @ 8kHz mono.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class StartInfo:
    stream_sid: str
    call_sid: str
    custom_parameters: dict[str, str] = field(default_factory=dict)
    media_format: dict[str, Any] = field(default_factory=dict)

    @property
    def caller_number(self) -> str | None:
        return self.custom_parameters.get("callerPhone") or None


def parse_twilio_ws_message(text: str) -> dict[str, Any]:
    message = json.loads(text)
    if not isinstance(message, dict):
        raise ValueError("Twilio message must be a JSON object")
    return message


def event_type(message: dict[str, Any]) -> str:
    return str(message.get("event") or "")


def parse_start(message: dict[str, Any]) -> StartInfo | None:
    start = message.get("start") or {}
    stream_sid = str(start.get("streamSid") or message.get("streamSid") or "")
    if not stream_sid:
        return None

    params = start.get("customParameters") or {}
    call_sid = str(start.get("callSid") or params.get("callSid") or "")
    return StartInfo(
        stream_sid=stream_sid,
        call_sid=call_sid,
        custom_parameters={str(k): str(v) for k, v in params.items()},
        media_format=dict(start.get("mediaFormat") or {}),
    )


def inbound_audio(message: dict[str, Any]) -> bytes | None:
    """Return decoded caller audio from a ``media`` event, or None."""

    media = message.get("media") or {}
    if media.get("track") and media.get("track") != "inbound":
        return None
    payload = media.get("payload")
    if not isinstance(payload, str) or not payload:
        return None
    try:
        return base64.b64decode(payload)
    except (binascii.Error, ValueError):
        return None


def mark_name(message: dict[str, Any]) -> str:
    mark = message.get("mark") or {}
    return str(mark.get("name") or "")


def media_message(stream_sid: str, ulaw_frame: bytes) -> dict[str, Any]:
    return {
        "event": "media",
        "streamSid": stream_sid,
        "media": {"payload": base64.b64encode(ulaw_frame).decode("ascii")},
    }


def mark_message(stream_sid: str, name: str) -> dict[str, Any]:
    return {"event": "mark", "streamSid": stream_sid, "mark": {"name": name}}


def clear_message(stream_sid: str) -> dict[str, Any]:
    return {"event": "clear", "streamSid": stream_sid}
