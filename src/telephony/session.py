"""In-memory per-call session state.

Each entry is owned by the one call orchestrator that holds the media stream
connection, so no locking is needed. Sessions never outlive their connection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

LOGGER = logging.getLogger(__name__)

Role = Literal["caller", "assistant"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class ConversationTurn:
    role: Role
    text: str
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(slots=True)
class SlotContext:
    """Facts accumulated across turns toward a visa lookup."""

    passport: str | None = None
    destination: str | None = None
    residence: str | None = None
    lookup_done: bool = False

    def merge(
        self,
        *,
        passport: str | None = None,
        destination: str | None = None,
        residence: str | None = None,
    ) -> bool:
        """Overwrite fields with non-empty values only. Returns True if anything changed.

        A new passport/destination pair re-arms the lookup.
        """

        changed = False
        for name, value in (("passport", passport), ("destination", destination), ("residence", residence)):
            if value and getattr(self, name) != value:
                setattr(self, name, value)
                changed = True
                if name != "residence":
                    self.lookup_done = False
        return changed

    @property
    def complete(self) -> bool:
        return bool(self.passport and self.destination)


@dataclass(slots=True)
class ConsentFlags:
    sms_offered: bool = False
    sms_consented: bool = False
    sms_sent: bool = False


@dataclass(slots=True)
class CallSession:
    call_sid: str
    stream_sid: str
    caller_number: str | None = None
    started_at: datetime = field(default_factory=_utcnow)
    conversation_history: list[ConversationTurn] = field(default_factory=list)
    busy: bool = False
    slot_context: SlotContext = field(default_factory=SlotContext)
    consent: ConsentFlags = field(default_factory=ConsentFlags)
    termination_requested: bool = False

    @property
    def duration_seconds(self) -> float:
        return (_utcnow() - self.started_at).total_seconds()


class SessionRegistry:
    """Table of live call sessions keyed by media stream SID."""

    def __init__(self) -> None:
        self._sessions: dict[str, CallSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, stream_sid: object) -> bool:
        return stream_sid in self._sessions

    def create(self, call_sid: str, stream_sid: str, caller_number: str | None = None) -> CallSession:
        if stream_sid in self._sessions:
            LOGGER.warning("Replacing existing session for stream %s", stream_sid)
        session = CallSession(call_sid=call_sid, stream_sid=stream_sid, caller_number=caller_number or None)
        self._sessions[stream_sid] = session
        LOGGER.info("Session created for call %s (stream: %s)", call_sid, stream_sid)
        return session

    def get(self, stream_sid: str) -> CallSession | None:
        return self._sessions.get(stream_sid)

    def remove(self, stream_sid: str) -> CallSession | None:
        session = self._sessions.pop(stream_sid, None)
        if session is not None:
            LOGGER.info(
                "Session ended for call %s (duration: %.0fs, messages: %d)",
                session.call_sid,
                session.duration_seconds,
                len(session.conversation_history),
            )
        return session

    def _require(self, stream_sid: str) -> CallSession | None:
        session = self._sessions.get(stream_sid)
        if session is None:
            LOGGER.warning("No session found for stream %s", stream_sid)
        return session

    # Conversation history

    def append_turn(self, stream_sid: str, role: Role, text: str) -> ConversationTurn | None:
        session = self._require(stream_sid)
        if session is None:
            return None
        turn = ConversationTurn(role=role, text=text)
        session.conversation_history.append(turn)
        LOGGER.info("[%s]: %s", role.upper(), text if len(text) <= 100 else text[:100] + "...")
        return turn

    def history(self, stream_sid: str) -> list[ConversationTurn]:
        session = self._sessions.get(stream_sid)
        return list(session.conversation_history) if session else []

    # Busy flag

    def set_busy(self, stream_sid: str, busy: bool) -> None:
        session = self._require(stream_sid)
        if session is not None:
            session.busy = busy

    def is_busy(self, stream_sid: str) -> bool:
        session = self._sessions.get(stream_sid)
        return session.busy if session else False

    # Slot context

    def update_slot_context(
        self,
        stream_sid: str,
        *,
        passport: str | None = None,
        destination: str | None = None,
        residence: str | None = None,
    ) -> SlotContext | None:
        session = self._require(stream_sid)
        if session is None:
            return None
        if session.slot_context.merge(passport=passport, destination=destination, residence=residence):
            LOGGER.info("Slot context updated for stream %s: %s", stream_sid, session.slot_context)
        return session.slot_context

    def has_complete_slots(self, stream_sid: str) -> bool:
        """True when passport and destination are known and not yet looked up."""

        session = self._sessions.get(stream_sid)
        if session is None:
            return False
        return session.slot_context.complete and not session.slot_context.lookup_done

    def mark_lookup_done(self, stream_sid: str) -> None:
        session = self._require(stream_sid)
        if session is not None:
            session.slot_context.lookup_done = True

    # Consent / side channel

    def record_sms_offer(self, stream_sid: str) -> None:
        session = self._require(stream_sid)
        if session is not None:
            session.consent.sms_offered = True

    def record_sms_consent(self, stream_sid: str) -> None:
        session = self._require(stream_sid)
        if session is not None:
            session.consent.sms_consented = True

    def claim_sms_send(self, stream_sid: str) -> bool:
        """Reserve the single SMS send allowed per call.

        Returns True only for the first caller; the flag stays set even if the
        delivery later fails.
        """

        session = self._require(stream_sid)
        if session is None or session.consent.sms_sent:
            return False
        session.consent.sms_sent = True
        return True

    # Termination

    def request_termination(self, stream_sid: str) -> None:
        session = self._require(stream_sid)
        if session is not None:
            session.termination_requested = True

    def stats(self) -> dict[str, object]:
        return {"active": len(self._sessions), "sessions": list(self._sessions)}
