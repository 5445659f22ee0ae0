from __future__ import annotations

import asyncio
import json

import pytest

from agents.errors import TranscriptionConnectError
from fakes import make_settings, wait_until
from speech.transcriber import DeepgramTranscriber, TranscriptEvent


def _results(text: str, *, is_final: bool, speech_final: bool = False) -> str:
    return json.dumps({
        "type": "Results",
        "is_final": is_final,
        "speech_final": speech_final,
        "channel": {"alternatives": [{"transcript": text, "confidence": 0.9}]},
    })


class FakeSocket:
    def __init__(self, messages=(), *, close_code: int | None = 1000, hold_open: bool = False) -> None:
        self.messages = list(messages)
        self.close_code = close_code
        self.hold_open = hold_open
        self.sent: list = []
        self.closed_with: tuple | None = None

    async def send(self, data) -> None:
        self.sent.append(data)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self.messages:
            yield message
        if self.hold_open:
            await asyncio.Event().wait()

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed_with = (code, reason)


class FakeConnector:
    """Hands out sockets in order; an exception in the list is raised instead."""

    def __init__(self, *outcomes) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[tuple[str, dict]] = []

    async def __call__(self, url: str, **kwargs):
        self.calls.append((url, kwargs))
        outcome = self.outcomes.pop(0) if self.outcomes else OSError("connection refused")
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


async def _drain(transcriber: DeepgramTranscriber) -> list[TranscriptEvent]:
    return [event async for event in transcriber.events()]


def test_results_become_interim_and_final_events():
    async def scenario():
        socket = FakeSocket([
            _results("hello", is_final=False),
            _results("hello there", is_final=True),
            _results("hello there", is_final=True, speech_final=True),
            json.dumps({"type": "Metadata", "request_id": "abc"}),
            _results("", is_final=True, speech_final=True),
            "not json",
            "[1, 2]",
        ])
        transcriber = DeepgramTranscriber("S1", make_settings(), connector=FakeConnector(socket))
        await transcriber.connect()

        events = await asyncio.wait_for(_drain(transcriber), timeout=2)
        assert [(e.text, e.is_final) for e in events] == [("hello", False), ("hello there", True)]
        assert events[0].confidence == pytest.approx(0.9)
        assert transcriber.degraded is False
        await transcriber.close()

    asyncio.run(scenario())


def test_connect_uses_telephony_audio_settings_and_token():
    async def scenario():
        connector = FakeConnector(FakeSocket(hold_open=True))
        settings = make_settings()
        transcriber = DeepgramTranscriber("S1", settings, connector=connector)
        await transcriber.connect()

        url, kwargs = connector.calls[0]
        assert url.startswith("wss://api.deepgram.com/v1/listen?")
        for part in ("encoding=mulaw", "sample_rate=8000", "channels=1", "model=nova-2", "interim_results=true", "endpointing=300"):
            assert part in url
        assert kwargs["additional_headers"] == {"Authorization": "Token dg-test"}
        await transcriber.close()

    asyncio.run(scenario())


def test_audio_is_forwarded_and_close_ends_the_stream():
    async def scenario():
        socket = FakeSocket(hold_open=True)
        transcriber = DeepgramTranscriber("S1", make_settings(), connector=FakeConnector(socket))
        await transcriber.connect()

        transcriber.send_audio(b"\x7f\x7f")
        transcriber.send_audio(b"")
        await wait_until(lambda: socket.sent == [b"\x7f\x7f"])

        await transcriber.close()
        assert json.loads(socket.sent[-1]) == {"type": "CloseStream"}
        assert socket.closed_with[0] == 1000
        assert await asyncio.wait_for(_drain(transcriber), timeout=2) == []

        transcriber.send_audio(b"\x00")
        await asyncio.sleep(0.01)
        assert len(socket.sent) == 2

    asyncio.run(scenario())


def test_unexpected_disconnect_reconnects():
    async def scenario():
        first = FakeSocket([_results("one", is_final=True, speech_final=True)], close_code=1011)
        second = FakeSocket([_results("two", is_final=True, speech_final=True)])
        connector = FakeConnector(first, second)
        transcriber = DeepgramTranscriber("S1", make_settings(), connector=connector)
        await transcriber.connect()

        events = await asyncio.wait_for(_drain(transcriber), timeout=2)
        assert [e.text for e in events] == ["one", "two"]
        assert len(connector.calls) == 2
        assert transcriber.degraded is False

    asyncio.run(scenario())


def test_reconnect_exhaustion_degrades():
    async def scenario():
        connector = FakeConnector(FakeSocket(close_code=1006))
        transcriber = DeepgramTranscriber("S1", make_settings(), connector=connector)
        await transcriber.connect()

        events = await asyncio.wait_for(_drain(transcriber), timeout=2)
        assert events == []
        assert transcriber.degraded is True
        # One initial connection plus three retries.
        assert len(connector.calls) == 4

        transcriber.send_audio(b"\xff")
        await transcriber.close()

    asyncio.run(scenario())


def test_connect_without_api_key_fails():
    async def scenario():
        connector = FakeConnector(FakeSocket())
        transcriber = DeepgramTranscriber("S1", make_settings(deepgram_api_key=None), connector=connector)
        with pytest.raises(TranscriptionConnectError):
            await transcriber.connect()
        assert connector.calls == []

    asyncio.run(scenario())


def test_connect_timeout_fails():
    async def scenario():
        async def never_connects(url, **kwargs):
            await asyncio.Event().wait()

        settings = make_settings(deepgram_connect_timeout_seconds=0.01)
        transcriber = DeepgramTranscriber("S1", settings, connector=never_connects)
        with pytest.raises(TranscriptionConnectError, match="timeout"):
            await transcriber.connect()

    asyncio.run(scenario())
