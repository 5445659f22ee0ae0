from __future__ import annotations

from collections.abc import Iterable

from agents.intent import country_name
from telephony.session import ConversationTurn, SlotContext


def role_for_turn(role: str) -> str:
    if role.strip().lower() == "assistant":
        return "assistant"
    return "user"


def build_llm_history(system_prompt: str, turns: Iterable[ConversationTurn]) -> list[dict[str, str]]:
    history: list[dict[str, str]] = [{"role": "system", "content": system_prompt}]
    for turn in turns:
        history.append({"role": role_for_turn(turn.role), "content": turn.text})
    return history


def describe_slots(slots: SlotContext) -> str:
    """One-line summary of the trip facts gathered so far, or "" if none."""

    known: list[str] = []
    if slots.passport:
        known.append(f"passport from {country_name(slots.passport)}")
    if slots.destination:
        known.append(f"travelling to {country_name(slots.destination)}")
    if slots.residence:
        known.append(f"living in {country_name(slots.residence)}")
    if not known:
        return ""
    return "Caller details so far: " + ", ".join(known) + "."
