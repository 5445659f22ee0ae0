"""Client for the travel platform's visa requirements API."""

from __future__ import annotations

import logging
from typing import Protocol

import httpx
from pydantic import ValidationError

from agents.errors import VisaLookupError
from agents.schemas import VisaRequirements
from config.settings import Settings, get_settings

LOGGER = logging.getLogger(__name__)


class VisaLookup(Protocol):
    async def check(self, passport: str, destination: str) -> VisaRequirements: ...


class VisaLookupClient:
    """Bearer-authenticated GET ``{base}/visa?from=XX&to=YY``."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._base_url = settings.visa_api_base_url.rstrip("/")
        self._api_key = settings.visa_api_key
        self._transport = transport

    async def check(self, passport: str, destination: str) -> VisaRequirements:
        if not self._api_key:
            raise VisaLookupError("Visa API not configured")

        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        LOGGER.info("Visa lookup: %s -> %s", passport, destination)
        try:
            async with httpx.AsyncClient(timeout=10, transport=self._transport) as client:
                response = await client.get(
                    f"{self._base_url}/visa",
                    params={"from": passport, "to": destination},
                    headers=headers,
                )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            LOGGER.error("Visa API request failed: %s", exc)
            raise VisaLookupError(str(exc)) from exc
        except ValueError as exc:
            raise VisaLookupError("Visa API returned invalid JSON") from exc

        data = payload.get("data") if isinstance(payload, dict) else None
        if not data:
            raise VisaLookupError(f"No visa data for {passport} -> {destination}")
        try:
            return VisaRequirements.model_validate(data)
        except ValidationError as exc:
            raise VisaLookupError(f"Unexpected visa payload: {exc.error_count()} errors") from exc


def format_visa_response(visa: VisaRequirements) -> str:
    """Render a lookup result as a short spoken answer."""

    origin = visa.route.origin.name or visa.route.origin.code
    target = visa.route.destination.name or visa.route.destination.code
    details = visa.visa

    if details.required:
        parts = [f"For travel from {origin} to {target}, you will need a visa."]
        if details.visa_type:
            parts.append(f"You'll need a {details.visa_type}.")
        if details.evisa_available:
            parts.append("Good news, you can apply for an e-visa online.")
        elif details.visa_on_arrival:
            parts.append("You can get a visa on arrival.")
        else:
            parts.append("You'll need to apply at the embassy or consulate before traveling.")
    else:
        parts = [f"Great news! Citizens of {origin} don't need a visa to visit {target}."]
        if details.visa_free_days:
            parts.append(f"You can stay for up to {details.visa_free_days} days without a visa.")

    documents = visa.documents
    if documents and documents.passport and documents.passport.minimum_validity_months:
        parts.append(
            f"Your passport should be valid for at least {documents.passport.minimum_validity_months} months."
        )
    if documents and documents.requirements and documents.requirements.yellow_fever_certificate:
        parts.append("You'll need a yellow fever vaccination certificate.")

    return " ".join(parts)
