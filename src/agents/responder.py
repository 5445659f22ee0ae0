"""Turn a caller utterance into one spoken reply.

Most turns go to the LLM. A few intents are answered directly because they
need side effects the model should not control: saying goodbye ends the call,
agreeing to a text message sends at most one SMS, and a complete
passport/destination pair triggers a visa lookup.
"""

from __future__ import annotations

import logging
import re
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Protocol

from agents.errors import VisaLookupError
from agents.intent import IntentClassifier, RegexIntentClassifier, country_name
from agents.state_utils import build_llm_history, describe_slots
from config.settings import Settings, get_settings
from integrations.sms import Messenger, booking_link_sms
from integrations.visa_api import VisaLookup, format_visa_response
from llm.base import BaseLLMClient
from prompts.loader import load_prompt
from telephony.session import CallSession, ConversationTurn, SessionRegistry

LOGGER = logging.getLogger(__name__)

SENTENCE_END = re.compile(r"[.!?]\s")


def split_sentences(buffer: str) -> tuple[list[str], str]:
    """Split complete sentences off the front of ``buffer``.

    Returns the finished sentences and the unfinished remainder.
    """

    sentences: list[str] = []
    while True:
        match = SENTENCE_END.search(buffer)
        if match is None:
            return sentences, buffer
        sentence = buffer[: match.start() + 1].strip()
        buffer = buffer[match.end():]
        if sentence:
            sentences.append(sentence)


async def _single(text: str) -> AsyncIterator[str]:
    yield text


@dataclass
class Reply:
    """Lazily produced text increments for one assistant turn.

    Iterate it once. ``end_call`` asks the pipeline to hang up after the reply plays.
    """

    increments: AsyncIterator[str]
    end_call: bool = False

    def __aiter__(self) -> AsyncIterator[str]:
        return self.increments


class ResponseGenerator(Protocol):
    async def generate(
        self,
        session: CallSession,
        utterance: str,
        history: Sequence[ConversationTurn],
    ) -> Reply: ...


class AssistantResponder:
    def __init__(
        self,
        registry: SessionRegistry,
        llm: BaseLLMClient,
        *,
        messenger: Messenger,
        visa_lookup: VisaLookup,
        classifier: IntentClassifier | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._registry = registry
        self._llm = llm
        self._messenger = messenger
        self._visa = visa_lookup
        self._classifier = classifier or RegexIntentClassifier()
        self._settings = settings or get_settings()
        self._system_prompt = load_prompt(
            "assistant_system.txt",
            business_name=self._settings.business_name,
            booking_url=self._settings.booking_url,
        )

    async def generate(
        self,
        session: CallSession,
        utterance: str,
        history: Sequence[ConversationTurn],
    ) -> Reply:
        sid = session.stream_sid
        facts = self._classifier.classify(utterance)
        self._registry.update_slot_context(
            sid,
            passport=facts.passport,
            destination=facts.destination,
            residence=facts.residence,
        )

        if facts.goodbye and not facts.visa_query:
            LOGGER.info("Goodbye detected on stream %s", sid)
            return Reply(_single(self._farewell()), end_call=True)

        consent = session.consent
        if facts.sms_consent or (facts.affirmative and consent.sms_offered and not consent.sms_sent):
            self._registry.record_sms_consent(sid)
            return Reply(self._send_booking_link(session))

        if self._registry.has_complete_slots(sid):
            self._registry.mark_lookup_done(sid)
            return Reply(self._visa_answer(session))

        return Reply(self._llm_reply(session, utterance, history))

    def _farewell(self) -> str:
        return f"Thank you for calling {self._settings.business_name}. Have a wonderful trip, goodbye!"

    async def _send_booking_link(self, session: CallSession) -> AsyncIterator[str]:
        if not session.caller_number:
            yield (
                "I'm sorry, I can't see a number for this call, so I can't send a text. "
                f"You can book any time at {self._settings.booking_url}."
            )
            return
        if not self._registry.claim_sms_send(session.stream_sid):
            yield "I've already sent you a text during this call, so do check your messages."
            return

        body = booking_link_sms(
            business_name=self._settings.business_name,
            booking_url=self._settings.booking_url,
            destination=country_name(session.slot_context.destination) or None,
        )
        result = await self._messenger.send(session.caller_number, body)
        if result.success:
            yield "Done! I've just sent you a text with the booking link. Is there anything else I can help with?"
        else:
            LOGGER.warning("Booking link SMS failed for call %s: %s", session.call_sid, result.error)
            yield (
                "I'm sorry, I couldn't send the text just now. "
                f"You can book directly at {self._settings.booking_url}."
            )

    async def _visa_answer(self, session: CallSession) -> AsyncIterator[str]:
        slots = session.slot_context
        try:
            visa = await self._visa.check(slots.passport, slots.destination)
        except VisaLookupError as exc:
            LOGGER.warning("Visa lookup %s -> %s failed: %s", slots.passport, slots.destination, exc)
            yield (
                "I don't currently have visa information for travel from "
                f"{country_name(slots.passport)} to {country_name(slots.destination)} in my system. "
                f"I'd recommend checking {self._settings.booking_url} for the latest requirements. "
                "Is there anything else I can help with?"
            )
            return

        text = format_visa_response(visa)
        if session.caller_number and not session.consent.sms_sent:
            self._registry.record_sms_offer(session.stream_sid)
            text += " Would you like me to text you a link to book this trip?"
        else:
            text += " Would you like me to help you book a flight for this trip?"
        # One increment keeps the visa answer in a single synthesis request.
        yield text

    async def _llm_reply(
        self,
        session: CallSession,
        utterance: str,
        history: Sequence[ConversationTurn],
    ) -> AsyncIterator[str]:
        system_prompt = self._system_prompt
        slot_summary = describe_slots(session.slot_context)
        if slot_summary:
            system_prompt += slot_summary + "\n"

        messages = build_llm_history(system_prompt, history)
        messages.append({"role": "user", "content": utterance})

        buffer = ""
        async for delta in self._llm.stream_chat(messages):
            buffer += delta
            sentences, buffer = split_sentences(buffer)
            for sentence in sentences:
                yield sentence
        if buffer.strip():
            yield buffer.strip()
