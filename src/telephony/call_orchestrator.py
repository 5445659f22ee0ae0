"""Per-call pipeline driving one Twilio media stream.

Inbound carrier audio goes to the transcriber. Settled transcripts start a
response cycle (responder -> synthesizer -> mu-law frames -> Twilio). Interim
transcripts are only used to detect the caller talking over the assistant.

State machine::

    AWAITING_START -> STREAMING <-> RESPONDING -> ENDING -> CLOSED
    (any state) -> CLOSED
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from enum import Enum
from typing import Any

from agents.errors import CallControlError, InvalidTransitionError, TranscriptionConnectError
from agents.intent import is_filler
from agents.responder import ResponseGenerator
from config.settings import Settings, get_settings
from integrations.twilio_client import CallControl
from integrations.twilio_streaming import (
    event_type,
    inbound_audio,
    mark_name,
    parse_start,
    parse_twilio_ws_message,
)
from speech.transcriber import BaseTranscriber
from speech.tts import BaseSynthesizer
from telephony.flow_control import MediaTransport, OutboundAudioFlow
from telephony.framing import AudioFramer
from telephony.session import SessionRegistry

LOGGER = logging.getLogger(__name__)


class CallState(str, Enum):
    AWAITING_START = "awaiting_start"
    STREAMING = "streaming"
    RESPONDING = "responding"
    ENDING = "ending"
    CLOSED = "closed"


ALLOWED_TRANSITIONS: dict[CallState, frozenset[CallState]] = {
    CallState.AWAITING_START: frozenset({CallState.STREAMING, CallState.CLOSED}),
    CallState.STREAMING: frozenset({CallState.RESPONDING, CallState.CLOSED}),
    CallState.RESPONDING: frozenset({CallState.STREAMING, CallState.ENDING, CallState.CLOSED}),
    CallState.ENDING: frozenset({CallState.CLOSED}),
    CallState.CLOSED: frozenset(),
}


class CallOrchestrator:
    """Owns one media stream connection from ``start`` to teardown.

    All mutation of the call's session happens on this orchestrator's event
    loop tasks, so the registry entry needs no locking.
    """

    def __init__(
        self,
        transport: MediaTransport,
        registry: SessionRegistry,
        *,
        transcriber_factory: Callable[[str], BaseTranscriber],
        synthesizer_factory: Callable[[], BaseSynthesizer],
        responder: ResponseGenerator,
        call_control: CallControl,
        settings: Settings | None = None,
    ) -> None:
        self._transport = transport
        self._registry = registry
        self._transcriber_factory = transcriber_factory
        self._synthesizer_factory = synthesizer_factory
        self._responder = responder
        self._call_control = call_control
        self._settings = settings or get_settings()

        self.state = CallState.AWAITING_START
        self.stream_sid: str | None = None
        self.call_sid: str | None = None
        self.flow: OutboundAudioFlow | None = None
        self._transcriber: BaseTranscriber | None = None
        self._synthesizer: BaseSynthesizer | None = None
        self._consumer: asyncio.Task | None = None
        self._greeting: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()

    def _transition(self, target: CallState) -> None:
        if target not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransitionError(f"Cannot go from {self.state.value} to {target.value}")
        LOGGER.debug("Stream %s: %s -> %s", self.stream_sid, self.state.value, target.value)
        self.state = target

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def run(self) -> None:
        """Consume carrier messages until the stream stops or the connection drops."""

        try:
            while self.state is not CallState.CLOSED:
                try:
                    raw = await self._transport.receive_text()
                except Exception:
                    # The socket is expected to fail once we have hung up ourselves.
                    if self.state is CallState.CLOSED:
                        break
                    raise
                await self.handle_message(raw)
        finally:
            await self.teardown()

    async def handle_message(self, raw: str) -> None:
        try:
            message = parse_twilio_ws_message(raw)
        except ValueError:
            LOGGER.warning("Ignoring malformed media stream message")
            return

        event = event_type(message)
        if event == "connected":
            LOGGER.info("Twilio media stream connected")
        elif event == "start":
            await self._on_start(message)
        elif event == "media":
            self._on_media(message)
        elif event == "mark":
            if self.flow is not None:
                self.flow.acknowledge(mark_name(message))
        elif event == "stop":
            LOGGER.info("Media stream stopped for call %s", self.call_sid)
            await self.teardown()
        else:
            LOGGER.debug("Unhandled media stream event: %s", event)

    async def _on_start(self, message: dict[str, Any]) -> None:
        if self.state is not CallState.AWAITING_START:
            LOGGER.warning("Duplicate start event on stream %s ignored", self.stream_sid)
            return

        info = parse_start(message)
        if info is None:
            LOGGER.warning("Start event without a stream SID ignored")
            return

        self.stream_sid = info.stream_sid
        self.call_sid = info.call_sid
        LOGGER.info("Stream started: %s (call: %s)", info.stream_sid, info.call_sid)

        transcriber = self._transcriber_factory(info.stream_sid)
        try:
            await transcriber.connect()
        except TranscriptionConnectError as exc:
            LOGGER.error("Transcription unavailable for call %s, aborting: %s", info.call_sid, exc)
            self.stream_sid = None
            await self.teardown()
            return

        self._transcriber = transcriber
        self._registry.create(info.call_sid, info.stream_sid, info.caller_number)
        self._synthesizer = self._synthesizer_factory()
        self.flow = OutboundAudioFlow(self._transport, info.stream_sid)
        self._transition(CallState.STREAMING)

        self._consumer = asyncio.create_task(self._consume_transcripts())
        self._greeting = self._spawn(self._speak_greeting())

    def _on_media(self, message: dict[str, Any]) -> None:
        if self._transcriber is None or self.state is CallState.CLOSED:
            return
        audio = inbound_audio(message)
        if audio:
            self._transcriber.send_audio(audio)

    async def _consume_transcripts(self) -> None:
        transcriber = self._transcriber
        try:
            async for event in transcriber.events():
                if event.is_final:
                    self._on_final(event.text)
                else:
                    await self._on_interim(event.text)
        except Exception:
            LOGGER.exception("Transcript consumer failed for stream %s", self.stream_sid)
            return
        if transcriber.degraded:
            LOGGER.warning("Stream %s continues without transcription", self.stream_sid)

    async def _on_interim(self, text: str) -> None:
        flow = self.flow
        if flow is None or flow.suppressed:
            return
        if self.state is not CallState.RESPONDING and not flow.playback_pending:
            return
        if len(text.strip()) <= self._settings.barge_in_min_chars or is_filler(text):
            return

        LOGGER.info("Barge-in on stream %s: %r", self.stream_sid, text)
        await flow.clear(suppress=True)

    def _on_final(self, text: str) -> None:
        text = text.strip()
        if not text or self.state not in (CallState.STREAMING, CallState.RESPONDING):
            return
        if self._registry.is_busy(self.stream_sid):
            LOGGER.info("Dropping transcript while a reply is in progress: %r", text)
            return

        if self._greeting is not None and not self._greeting.done():
            self._greeting.cancel()

        self._registry.set_busy(self.stream_sid, True)
        self._transition(CallState.RESPONDING)
        self._spawn(self._response_cycle(text))

    async def _speak(self, text: str) -> None:
        """Synthesize ``text`` into the outbound flow and flush it with one mark."""

        flow = self.flow
        framer = AudioFramer(self._synthesizer.output_format, frame_bytes=self._settings.outbound_frame_bytes)
        async for chunk in self._synthesizer.stream(text):
            if flow.suppressed:
                return
            for frame in framer.push(chunk):
                flow.enqueue(frame)
        for frame in framer.finish():
            flow.enqueue(frame)
        await flow.flush()

    async def _speak_greeting(self) -> None:
        try:
            await self._speak(self._settings.greeting_text)
        except Exception:
            LOGGER.exception("Greeting failed on stream %s", self.stream_sid)

    async def _response_cycle(self, text: str) -> None:
        sid = self.stream_sid
        session = self._registry.get(sid)
        if session is None:
            return

        await self.flow.clear()
        self.flow.resume()

        history = self._registry.history(sid)
        self._registry.append_turn(sid, "caller", text)

        spoken: list[str] = []
        end_call = False
        try:
            reply = await self._responder.generate(session, text, history)
            end_call = reply.end_call
            async for increment in reply:
                await self._speak(increment)
                spoken.append(increment)
                if self.flow.suppressed:
                    LOGGER.info("Reply on stream %s cut short by the caller", sid)
                    break
        except Exception:
            LOGGER.exception("Response generation failed on stream %s", sid)
            end_call = False
            apology = self._settings.apology_text
            spoken.append(apology)
            try:
                await self._speak(apology)
            except Exception:
                LOGGER.exception("Could not play apology on stream %s", sid)

        reply_text = " ".join(spoken).strip()
        if reply_text:
            self._registry.append_turn(sid, "assistant", reply_text)
        self._registry.set_busy(sid, False)

        if end_call:
            self._registry.request_termination(sid)
            self._transition(CallState.ENDING)
            self._spawn(self._hang_up_later())
        else:
            self._transition(CallState.STREAMING)

    async def _hang_up_later(self) -> None:
        # Give the goodbye audio time to play before dropping the line.
        await asyncio.sleep(self._settings.call_end_delay_seconds)
        if self.call_sid:
            try:
                await self._call_control.end_call(self.call_sid)
            except CallControlError as exc:
                LOGGER.error("Could not end call %s: %s", self.call_sid, exc)
        await self.teardown()

    async def teardown(self) -> None:
        """Release everything the call holds. Safe to call more than once."""

        if self.state is CallState.CLOSED:
            return
        self._transition(CallState.CLOSED)

        current = asyncio.current_task()
        pending = [t for t in (*self._tasks, self._consumer) if t is not None and t is not current and not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        if self._transcriber is not None:
            await self._transcriber.close()
        if self.flow is not None:
            self.flow.close()
        if self.stream_sid is not None:
            self._registry.remove(self.stream_sid)

        try:
            await self._transport.close()
        except Exception as exc:
            LOGGER.debug("Media stream connection already closed: %s", exc)
        LOGGER.info("Call %s torn down", self.call_sid)
