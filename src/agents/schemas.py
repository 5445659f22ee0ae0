"""Pydantic schemas exchanged between the responder and its collaborators."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class UtteranceFacts(BaseModel):
    """What the intent classifier pulled out of one caller utterance."""

    passport: str | None = None
    destination: str | None = None
    residence: str | None = None
    visa_query: bool = False
    sms_consent: bool = False
    affirmative: bool = False
    goodbye: bool = False

    @field_validator("passport", "destination", "residence")
    @classmethod
    def upper_country_code(cls, value: str | None) -> str | None:
        if value is None:
            return None
        code = value.strip().upper()
        return code or None


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CountryRef(_CamelModel):
    code: str = ""
    name: str = ""


class VisaRoute(_CamelModel):
    origin: CountryRef = Field(default_factory=CountryRef, alias="from")
    destination: CountryRef = Field(default_factory=CountryRef, alias="to")


class VisaDetails(_CamelModel):
    required: bool = False
    visa_type: str | None = Field(default=None, alias="visaType")
    evisa_available: bool = Field(default=False, alias="evisaAvailable")
    visa_on_arrival: bool = Field(default=False, alias="visaOnArrival")
    visa_free_days: int | None = Field(default=None, alias="visaFreeDays")


class PassportRules(_CamelModel):
    minimum_validity_months: int | None = Field(default=None, alias="minimumValidityMonths")


class EntryRequirements(_CamelModel):
    yellow_fever_certificate: bool = Field(default=False, alias="yellowFeverCertificate")


class TravelDocuments(_CamelModel):
    passport: PassportRules | None = None
    requirements: EntryRequirements | None = None


class VisaRequirements(_CamelModel):
    """Visa API ``data`` object for one passport/destination route."""

    route: VisaRoute = Field(default_factory=VisaRoute)
    visa: VisaDetails = Field(default_factory=VisaDetails)
    documents: TravelDocuments | None = None


class SmsResult(BaseModel):
    success: bool
    message_sid: str | None = None
    error: str | None = None
