"""Realtime speech-to-text over the Deepgram streaming WebSocket API."""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import websockets

from agents.errors import TranscriptionConnectError
from config.settings import Settings, get_settings

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TranscriptEvent:
    """One transcription result; ``is_final`` marks a settled utterance."""

    text: str
    is_final: bool
    confidence: float = 0.0


class BaseTranscriber(ABC):
    """Interface for per-call streaming transcribers."""

    degraded: bool = False

    @abstractmethod
    async def connect(self) -> None:
        """Open the stream. Raises TranscriptionConnectError on failure."""

    @abstractmethod
    def send_audio(self, audio: bytes) -> None:
        """Queue caller audio (mu-law 8kHz) without blocking."""

    @abstractmethod
    def events(self) -> AsyncIterator[TranscriptEvent]:
        """Yield transcript events until the stream ends."""

    @abstractmethod
    async def close(self) -> None:
        """Close the stream for good."""


class DeepgramTranscriber(BaseTranscriber):
    """Deepgram live transcription configured for Twilio telephony audio.

    Unexpected disconnects are retried a bounded number of times with a fixed
    backoff. Once attempts run out the transcriber is marked ``degraded``,
    incoming audio is discarded and the event stream ends.
    """

    def __init__(
        self,
        stream_sid: str,
        settings: Settings | None = None,
        *,
        connector: Callable[..., Any] | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._stream_sid = stream_sid
        self._connector = connector or websockets.connect
        self._ws: Any = None
        self._audio: asyncio.Queue[bytes] = asyncio.Queue()
        self._events: asyncio.Queue[TranscriptEvent | None] = asyncio.Queue()
        self._sender: asyncio.Task | None = None
        self._receiver: asyncio.Task | None = None
        self._closing = False
        self._reconnect_attempts = 0
        self.degraded = False

    def _listen_url(self) -> str:
        s = self._settings
        query = urlencode(
            {
                "encoding": "mulaw",
                "sample_rate": "8000",
                "channels": "1",
                "model": s.deepgram_model,
                "language": s.deepgram_language,
                "punctuate": "true",
                "interim_results": "true",
                "endpointing": str(s.deepgram_endpointing_ms),
                "utterance_end_ms": str(s.deepgram_utterance_end_ms),
                "vad_events": "true",
                "smart_format": "true",
            }
        )
        return f"{s.deepgram_url}?{query}"

    async def _open(self) -> None:
        headers = {"Authorization": f"Token {self._settings.deepgram_api_key}"}
        try:
            self._ws = await asyncio.wait_for(
                self._connector(self._listen_url(), additional_headers=headers, ping_interval=20),
                timeout=self._settings.deepgram_connect_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise TranscriptionConnectError("Deepgram connection timeout") from exc
        except (OSError, websockets.WebSocketException) as exc:
            raise TranscriptionConnectError(f"Deepgram connection failed: {exc}") from exc

    async def connect(self) -> None:
        if not self._settings.deepgram_api_key:
            raise TranscriptionConnectError("Deepgram API key not configured")

        LOGGER.info("Connecting to Deepgram for stream %s", self._stream_sid)
        await self._open()
        LOGGER.info("Deepgram connected for stream %s", self._stream_sid)

        self._sender = asyncio.create_task(self._send_loop())
        self._receiver = asyncio.create_task(self._receive_loop())

    def send_audio(self, audio: bytes) -> None:
        if self._closing or self.degraded or not audio:
            return
        self._audio.put_nowait(audio)

    async def events(self) -> AsyncIterator[TranscriptEvent]:
        while True:
            event = await self._events.get()
            if event is None:
                return
            yield event

    async def _send_loop(self) -> None:
        while True:
            chunk = await self._audio.get()
            ws = self._ws
            if ws is None:
                continue  # reconnecting; audio in the gap is lost
            try:
                await ws.send(chunk)
            except websockets.ConnectionClosed:
                continue

    async def _receive_loop(self) -> None:
        try:
            while True:
                ws = self._ws
                close_code: int | None = None
                try:
                    async for message in ws:
                        self._handle_message(message)
                    close_code = ws.close_code
                except websockets.ConnectionClosed as exc:
                    close_code = exc.rcvd.code if exc.rcvd else None

                if self._closing or close_code == 1000:
                    break

                LOGGER.warning("Deepgram disconnected (code: %s) for stream %s", close_code, self._stream_sid)
                self._ws = None
                if not await self._reconnect():
                    self.degraded = True
                    LOGGER.error(
                        "Deepgram reconnection exhausted for stream %s; caller audio will no longer be transcribed",
                        self._stream_sid,
                    )
                    break
        finally:
            self._events.put_nowait(None)

    async def _reconnect(self) -> bool:
        max_attempts = self._settings.deepgram_max_reconnect_attempts
        while self._reconnect_attempts < max_attempts:
            self._reconnect_attempts += 1
            LOGGER.info("Attempting Deepgram reconnect (%d/%d)", self._reconnect_attempts, max_attempts)
            await asyncio.sleep(self._settings.deepgram_reconnect_backoff_seconds)
            if self._closing:
                return False
            try:
                await self._open()
            except TranscriptionConnectError as exc:
                LOGGER.warning("Deepgram reconnect failed: %s", exc)
                continue
            self._reconnect_attempts = 0
            LOGGER.info("Deepgram reconnected for stream %s", self._stream_sid)
            return True
        return False

    def _handle_message(self, message: str | bytes) -> None:
        try:
            response = json.loads(message)
        except (json.JSONDecodeError, TypeError):
            LOGGER.debug("Ignoring non-JSON Deepgram message")
            return

        if not isinstance(response, dict) or response.get("type") != "Results":
            return

        alternatives = (response.get("channel") or {}).get("alternatives") or []
        if not alternatives:
            return
        alternative = alternatives[0]
        text = str(alternative.get("transcript") or "").strip()
        if not text:
            return

        confidence = float(alternative.get("confidence") or 0.0)
        if not response.get("is_final"):
            self._events.put_nowait(TranscriptEvent(text=text, is_final=False, confidence=confidence))
        if response.get("speech_final"):
            LOGGER.info("Final transcript: %r", text)
            self._events.put_nowait(TranscriptEvent(text=text, is_final=True, confidence=confidence))

    async def close(self) -> None:
        if self._closing:
            return
        self._closing = True

        ws = self._ws
        if ws is not None:
            try:
                await ws.send(json.dumps({"type": "CloseStream"}))
                await ws.close(1000, "Session ended")
            except websockets.WebSocketException:
                LOGGER.debug("Deepgram socket already closed for stream %s", self._stream_sid)

        for task in (self._sender, self._receiver):
            if task is not None and not task.done():
                task.cancel()
        self._events.put_nowait(None)
