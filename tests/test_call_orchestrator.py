from __future__ import annotations

import asyncio
import base64
from dataclasses import dataclass

from fakes import (
    FakeCallControl,
    FakeResponder,
    FakeSynthesizer,
    FakeTranscriber,
    FakeTransport,
    make_settings,
    start_event,
    wait_until,
)
from telephony.call_orchestrator import ALLOWED_TRANSITIONS, CallOrchestrator, CallState
from telephony.session import SessionRegistry

GREETING = "Hello, how can I help?"


@dataclass
class Harness:
    orchestrator: CallOrchestrator
    transport: FakeTransport
    registry: SessionRegistry
    transcriber: FakeTranscriber
    synthesizer: FakeSynthesizer
    control: FakeCallControl

    def marks(self) -> int:
        return len(self.transport.events("mark"))

    def clears(self) -> int:
        return len(self.transport.events("clear"))


def _harness(responder, *, transcriber=None, synthesizer=None) -> Harness:
    transport = FakeTransport()
    registry = SessionRegistry()
    transcriber = transcriber or FakeTranscriber()
    synthesizer = synthesizer or FakeSynthesizer()
    control = FakeCallControl()
    orchestrator = CallOrchestrator(
        transport,
        registry,
        transcriber_factory=lambda stream_sid: transcriber,
        synthesizer_factory=lambda: synthesizer,
        responder=responder,
        call_control=control,
        settings=make_settings(),
    )
    return Harness(orchestrator, transport, registry, transcriber, synthesizer, control)


async def _started(h: Harness) -> asyncio.Task:
    runner = asyncio.create_task(h.orchestrator.run())
    h.transport.push({"event": "connected", "protocol": "Call", "version": "1.0.0"})
    h.transport.push(start_event())
    await wait_until(lambda: h.orchestrator.state is CallState.STREAMING)
    # Greeting has been synthesized and flushed with its mark.
    await wait_until(lambda: h.marks() == 1)
    return runner


def test_transition_table_only_allows_closing_from_ending():
    assert ALLOWED_TRANSITIONS[CallState.ENDING] == frozenset({CallState.CLOSED})
    assert ALLOWED_TRANSITIONS[CallState.CLOSED] == frozenset()
    for state in CallState:
        if state is not CallState.CLOSED:
            assert CallState.CLOSED in ALLOWED_TRANSITIONS[state]


def test_full_turn_from_start_to_stop():
    async def scenario():
        gate = asyncio.Event()
        h = _harness(FakeResponder(["Hi there."], gate=gate))
        runner = await _started(h)

        session = h.registry.get("S1")
        assert session is not None
        assert session.busy is False
        assert session.caller_number == "+447700900123"
        assert h.synthesizer.spoken == [GREETING]
        assert h.orchestrator.flow.marks_sent == 1

        h.transport.push({
            "event": "media",
            "streamSid": "S1",
            "media": {"track": "inbound", "payload": base64.b64encode(b"\x01\x02").decode()},
        })
        await wait_until(lambda: h.transcriber.audio == [b"\x01\x02"])

        h.transcriber.emit("hello")
        await wait_until(lambda: h.orchestrator.state is CallState.RESPONDING)
        assert h.registry.is_busy("S1") is True

        gate.set()
        await wait_until(lambda: h.orchestrator.state is CallState.STREAMING)
        assert h.registry.is_busy("S1") is False
        assert h.marks() == 2
        history = h.registry.history("S1")
        assert [(t.role, t.text) for t in history] == [("caller", "hello"), ("assistant", "Hi there.")]

        h.transport.push({"event": "stop", "streamSid": "S1", "stop": {"callSid": "CA1"}})
        await asyncio.wait_for(runner, timeout=2)

        assert h.orchestrator.state is CallState.CLOSED
        assert "S1" not in h.registry
        assert h.transcriber.closed is True
        assert h.transport.closed is True

    asyncio.run(scenario())


def test_transcript_during_reply_is_dropped():
    async def scenario():
        gate = asyncio.Event()
        responder = FakeResponder(["Sure."], gate=gate)
        h = _harness(responder)
        runner = await _started(h)

        h.transcriber.emit("first question")
        await wait_until(lambda: h.orchestrator.state is CallState.RESPONDING)
        h.transcriber.emit("second question")
        await asyncio.sleep(0.05)
        assert responder.calls == [("first question", 0)]

        gate.set()
        await wait_until(lambda: h.orchestrator.state is CallState.STREAMING)
        assert len(h.registry.history("S1")) == 2

        h.transcriber.emit("third question")
        await wait_until(lambda: len(responder.calls) == 2)
        assert responder.calls[1] == ("third question", 2)

        await h.orchestrator.teardown()
        await asyncio.wait_for(runner, timeout=2)

    asyncio.run(scenario())


def test_barge_in_clears_playback_only_for_real_speech():
    async def scenario():
        h = _harness(FakeResponder(["Sure."]))
        runner = await _started(h)
        flow = h.orchestrator.flow
        assert flow.playback_pending is True

        h.transcriber.emit("um", is_final=False)
        h.transcriber.emit("no", is_final=False)
        await asyncio.sleep(0.05)
        assert h.clears() == 0

        h.transcriber.emit("wait, stop please", is_final=False)
        await wait_until(lambda: h.clears() == 1)
        assert flow.suppressed is True

        # The next reply resumes output.
        h.transcriber.emit("tell me about flights")
        await wait_until(lambda: h.orchestrator.state is CallState.STREAMING and h.marks() == 2)
        assert flow.suppressed is False

        # Once Twilio confirms playback there is nothing left to interrupt.
        h.transport.push({"event": "mark", "streamSid": "S1", "mark": {"name": "response-end-2"}})
        await wait_until(lambda: not flow.playback_pending)
        h.transcriber.emit("something else entirely", is_final=False)
        await asyncio.sleep(0.05)
        assert h.clears() == 1

        await h.orchestrator.teardown()
        await asyncio.wait_for(runner, timeout=2)

    asyncio.run(scenario())


def test_barge_in_cuts_reply_short():
    async def scenario():
        gate = asyncio.Event()
        responder = FakeResponder(["First sentence.", "Second sentence."], gate=gate)
        h = _harness(responder)
        runner = await _started(h)

        h.transcriber.emit("what about visas")
        await wait_until(lambda: h.orchestrator.state is CallState.RESPONDING)
        h.transcriber.emit("actually never mind", is_final=False)
        await wait_until(lambda: h.orchestrator.flow.suppressed)

        gate.set()
        await wait_until(lambda: h.orchestrator.state is CallState.STREAMING)
        assert "Second sentence." not in h.synthesizer.spoken
        assert h.marks() == 1
        assert h.registry.is_busy("S1") is False

        await h.orchestrator.teardown()
        await asyncio.wait_for(runner, timeout=2)

    asyncio.run(scenario())


def test_transcription_connect_failure_aborts_the_call():
    async def scenario():
        h = _harness(FakeResponder(["unused"]), transcriber=FakeTranscriber(fail_connect=True))
        runner = asyncio.create_task(h.orchestrator.run())
        h.transport.push(start_event())
        await asyncio.wait_for(runner, timeout=2)

        assert h.orchestrator.state is CallState.CLOSED
        assert len(h.registry) == 0
        assert h.transport.closed is True
        assert h.transport.sent == []

    asyncio.run(scenario())


def test_synthesis_failure_is_answered_with_apology():
    async def scenario():
        synthesizer = FakeSynthesizer(fail_on={"Broken reply."})
        h = _harness(FakeResponder(["Broken reply."]), synthesizer=synthesizer)
        runner = await _started(h)
        apology = make_settings().apology_text

        h.transcriber.emit("hello")
        await wait_until(lambda: h.orchestrator.state is CallState.STREAMING and h.marks() == 2)

        assert synthesizer.spoken == [GREETING, apology]
        history = h.registry.history("S1")
        assert history[-1].role == "assistant"
        assert history[-1].text == apology
        assert h.registry.is_busy("S1") is False

        await h.orchestrator.teardown()
        await asyncio.wait_for(runner, timeout=2)

    asyncio.run(scenario())


def test_goodbye_hangs_up_after_delay():
    async def scenario():
        h = _harness(FakeResponder(["Goodbye!"], end_call=True))
        runner = await _started(h)
        session = h.registry.get("S1")

        h.transcriber.emit("that's all, bye")
        await asyncio.wait_for(runner, timeout=2)

        assert session.termination_requested is True
        assert h.control.ended == ["CA1"]
        assert h.orchestrator.state is CallState.CLOSED
        assert "S1" not in h.registry
        assert h.transport.closed is True
        assert h.synthesizer.spoken == [GREETING, "Goodbye!"]

    asyncio.run(scenario())


def test_malformed_messages_are_ignored():
    async def scenario():
        h = _harness(FakeResponder(["unused"]))
        await h.orchestrator.handle_message("not json")
        assert h.orchestrator.state is CallState.AWAITING_START
        await h.orchestrator.teardown()
        await h.orchestrator.teardown()
        assert h.orchestrator.state is CallState.CLOSED

    asyncio.run(scenario())


class FailingResponder:
    def __init__(self) -> None:
        self.calls = 0

    async def generate(self, session, utterance, history):
        self.calls += 1
        raise RuntimeError("model unavailable")


def test_generation_failure_is_answered_with_apology():
    async def scenario():
        responder = FailingResponder()
        h = _harness(responder)
        runner = await _started(h)
        apology = make_settings().apology_text

        h.transcriber.emit("hello")
        await wait_until(lambda: h.orchestrator.state is CallState.STREAMING and h.marks() == 2)

        assert responder.calls == 1
        assert h.synthesizer.spoken == [GREETING, apology]
        history = h.registry.history("S1")
        assert [(t.role, t.text) for t in history] == [("caller", "hello"), ("assistant", apology)]
        assert h.registry.is_busy("S1") is False

        await h.orchestrator.teardown()
        await asyncio.wait_for(runner, timeout=2)

    asyncio.run(scenario())


def test_call_stays_up_when_transcription_gives_up():
    async def scenario():
        h = _harness(FakeResponder(["unused"]))
        runner = await _started(h)

        h.transcriber.finish()
        await asyncio.sleep(0.05)

        assert h.orchestrator.state is CallState.STREAMING
        assert "S1" in h.registry
        assert h.transport.closed is False
        assert runner.done() is False

        # Carrier messages are still handled until the caller hangs up.
        h.transport.push({"event": "stop", "streamSid": "S1", "stop": {"callSid": "CA1"}})
        await asyncio.wait_for(runner, timeout=2)
        assert "S1" not in h.registry

    asyncio.run(scenario())
