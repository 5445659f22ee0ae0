from __future__ import annotations

import base64
import json

import pytest

from fakes import start_event
from integrations.twilio_streaming import (
    clear_message,
    event_type,
    inbound_audio,
    mark_message,
    mark_name,
    media_message,
    parse_start,
    parse_twilio_ws_message,
)


def test_parse_start_reads_custom_parameters():
    message = parse_twilio_ws_message(json.dumps(start_event("MZ1", "CA9", "+233201234567")))

    assert event_type(message) == "start"
    info = parse_start(message)
    assert info.stream_sid == "MZ1"
    assert info.call_sid == "CA9"
    assert info.caller_number == "+233201234567"
    assert info.media_format["sampleRate"] == 8000


def test_parse_start_without_stream_sid():
    assert parse_start({"event": "start", "start": {}}) is None


def test_parse_rejects_non_object_payload():
    with pytest.raises(ValueError):
        parse_twilio_ws_message("[1, 2, 3]")


def test_inbound_audio_decodes_base64_payload():
    payload = base64.b64encode(b"\xff" * 10).decode("ascii")
    message = {"event": "media", "media": {"track": "inbound", "payload": payload}}
    assert inbound_audio(message) == b"\xff" * 10


def test_inbound_audio_ignores_other_tracks_and_garbage():
    payload = base64.b64encode(b"\x00").decode("ascii")
    assert inbound_audio({"event": "media", "media": {"track": "outbound", "payload": payload}}) is None
    assert inbound_audio({"event": "media", "media": {"payload": "***"}}) is None
    assert inbound_audio({"event": "media", "media": {}}) is None


def test_outbound_message_builders():
    media = media_message("MZ1", b"\x7f\xff")
    assert media == {"event": "media", "streamSid": "MZ1", "media": {"payload": "f/8="}}
    assert mark_message("MZ1", "response-end-3") == {
        "event": "mark",
        "streamSid": "MZ1",
        "mark": {"name": "response-end-3"},
    }
    assert clear_message("MZ1") == {"event": "clear", "streamSid": "MZ1"}
    assert mark_name({"event": "mark", "mark": {"name": "response-end-3"}}) == "response-end-3"
