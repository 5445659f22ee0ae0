from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

from twilio.base.exceptions import TwilioRestException

from agents.errors import CallControlError
from config.settings import get_settings

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class TwilioConfig:
    account_sid: str
    auth_token: str
    from_number: str | None = None
    messaging_service_sid: str | None = None
    public_base_url: str | None = None


def get_twilio_config() -> TwilioConfig:
    settings = get_settings()
    if not settings.twilio_account_sid or not settings.twilio_auth_token:
        raise ValueError("Twilio credentials are not configured")

    return TwilioConfig(
        account_sid=settings.twilio_account_sid,
        auth_token=settings.twilio_auth_token,
        from_number=settings.twilio_phone_number,
        messaging_service_sid=settings.twilio_messaging_service_sid,
        public_base_url=settings.public_base_url.rstrip("/") if settings.public_base_url else None,
    )


def build_twilio_client(cfg: TwilioConfig | None = None):
    from twilio.rest import Client

    cfg = cfg or get_twilio_config()
    return Client(cfg.account_sid, cfg.auth_token)


class CallControl(Protocol):
    async def end_call(self, call_sid: str) -> None: ...


class TwilioCallControl:
    """Hang up live calls through the Twilio REST API.

    The Twilio helper library is synchronous, so requests run in a worker thread.
    """

    def __init__(self, client: Any | None = None) -> None:
        self._client = client

    def _get_client(self):
        if self._client is None:
            self._client = build_twilio_client()
        return self._client

    async def end_call(self, call_sid: str) -> None:
        try:
            client = self._get_client()
            await asyncio.to_thread(lambda: client.calls(call_sid).update(status="completed"))
        except (TwilioRestException, ValueError) as exc:
            LOGGER.error("Failed to end call %s: %s", call_sid, exc)
            raise CallControlError(str(exc)) from exc
        LOGGER.info("Call %s ended via Twilio API", call_sid)
