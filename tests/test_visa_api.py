from __future__ import annotations

import asyncio

import httpx
import pytest

from agents.errors import VisaLookupError
from agents.schemas import VisaRequirements
from fakes import make_settings
from integrations.visa_api import VisaLookupClient, format_visa_response

PAYLOAD = {
    "success": True,
    "data": {
        "route": {"from": {"code": "GH", "name": "Ghana"}, "to": {"code": "TZ", "name": "Tanzania"}},
        "visa": {"required": True, "visaType": "tourist visa", "evisaAvailable": False, "visaOnArrival": True},
        "documents": {
            "passport": {"minimumValidityMonths": 6},
            "requirements": {"yellowFeverCertificate": True},
        },
    },
}


def _client(handler, **overrides) -> VisaLookupClient:
    return VisaLookupClient(make_settings(**overrides), transport=httpx.MockTransport(handler))


def test_check_sends_route_and_bearer_token():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=PAYLOAD)

    visa = asyncio.run(_client(handler).check("GH", "TZ"))

    assert visa.route.origin.name == "Ghana"
    assert visa.visa.visa_on_arrival is True
    assert seen[0].url.path == "/api/v1/visa"
    assert dict(seen[0].url.params) == {"from": "GH", "to": "TZ"}
    assert seen[0].headers["Authorization"] == "Bearer visa-test"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(404, json={"error": "not found"}),
        httpx.Response(200, json={"success": False}),
        httpx.Response(200, content=b"<html>"),
    ],
)
def test_check_failures_raise_lookup_error(response):
    with pytest.raises(VisaLookupError):
        asyncio.run(_client(lambda request: response).check("GH", "TZ"))


def test_check_without_key_does_not_call_api():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    with pytest.raises(VisaLookupError, match="not configured"):
        asyncio.run(_client(handler, visa_api_key=None).check("GH", "TZ"))


def test_format_visa_response_for_required_visa():
    text = format_visa_response(VisaRequirements.model_validate(PAYLOAD["data"]))
    assert text == (
        "For travel from Ghana to Tanzania, you will need a visa. "
        "You'll need a tourist visa. "
        "You can get a visa on arrival. "
        "Your passport should be valid for at least 6 months. "
        "You'll need a yellow fever vaccination certificate."
    )


def test_format_visa_response_for_visa_free_travel():
    visa = VisaRequirements.model_validate({
        "route": {"from": {"code": "GB", "name": "United Kingdom"}, "to": {"code": "GH", "name": "Ghana"}},
        "visa": {"required": False, "visaFreeDays": 90},
    })
    assert format_visa_response(visa) == (
        "Great news! Citizens of United Kingdom don't need a visa to visit Ghana. "
        "You can stay for up to 90 days without a visa."
    )
