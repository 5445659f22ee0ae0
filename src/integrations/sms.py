"""Outbound SMS through Twilio Messaging."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from twilio.base.exceptions import TwilioRestException

from agents.schemas import SmsResult
from config.settings import Settings, get_settings
from integrations.twilio_client import build_twilio_client

LOGGER = logging.getLogger(__name__)


def booking_link_sms(*, business_name: str, booking_url: str, destination: str | None = None) -> str:
    trip = f"Ready to book your trip to {destination}? " if destination else ""
    return (
        f"Thanks for calling {business_name}!\n\n"
        f"{trip}Visit us at {booking_url} to search and book flights.\n\n"
        "Safe travels!"
    )


class Messenger(Protocol):
    async def send(self, to: str, body: str) -> SmsResult: ...


class TwilioMessenger:
    """Send texts via a Messaging Service SID (alpha sender) or the Twilio number."""

    def __init__(self, client: Any | None = None, settings: Settings | None = None) -> None:
        self._client = client
        self._settings = settings or get_settings()

    async def send(self, to: str, body: str) -> SmsResult:
        cleaned_to = to if to.startswith("+") else f"+{to}"
        kwargs: dict[str, str] = {"to": cleaned_to, "body": body}
        if self._settings.twilio_messaging_service_sid:
            kwargs["messaging_service_sid"] = self._settings.twilio_messaging_service_sid
        elif self._settings.twilio_phone_number:
            kwargs["from_"] = self._settings.twilio_phone_number
        else:
            LOGGER.warning("SMS not sent: no messaging service or phone number configured")
            return SmsResult(success=False, error="No messaging service or phone number configured")

        LOGGER.info("Sending SMS to %s****", cleaned_to[:6])
        try:
            if self._client is None:
                self._client = build_twilio_client()
            client = self._client
            message = await asyncio.to_thread(lambda: client.messages.create(**kwargs))
        except (TwilioRestException, ValueError) as exc:
            LOGGER.error("Failed to send SMS: %s", exc)
            return SmsResult(success=False, error=str(exc))

        LOGGER.info("SMS sent (sid: %s)", message.sid)
        return SmsResult(success=True, message_sid=str(message.sid))
