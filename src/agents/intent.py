"""Rule-based extraction of caller intent from a single utterance.

Phone transcripts are short and noisy, so the classifier only looks for a few
things: which countries are mentioned and in what role (passport, destination,
residence), whether the caller asked for a text message or said yes to one,
and whether they are saying goodbye. Country names are matched against an
alias table that also covers common mis-transcriptions.
"""

from __future__ import annotations

import re
from typing import Protocol

from agents.schemas import UtteranceFacts

COUNTRY_ALIASES: dict[str, str] = {
    # Africa
    "ghana": "GH", "accra": "GH", "ghanaian": "GH", "ghan": "GH",
    "nigeria": "NG", "lagos": "NG", "abuja": "NG", "nigerian": "NG",
    "kenya": "KE", "nairobi": "KE", "kenyan": "KE",
    "south africa": "ZA", "johannesburg": "ZA", "cape town": "ZA", "south african": "ZA",
    "egypt": "EG", "cairo": "EG", "egyptian": "EG",
    "morocco": "MA", "moroccan": "MA",
    "rwanda": "RW", "kigali": "RW", "rwandan": "RW",
    "tanzania": "TZ", "dar es salaam": "TZ", "tanzanian": "TZ", "zanzibar": "TZ",
    "danzaba": "TZ", "tansania": "TZ",
    "ethiopia": "ET", "addis ababa": "ET", "ethiopian": "ET",
    "senegal": "SN", "dakar": "SN", "senegalese": "SN",
    "cameroon": "CM", "cameroonian": "CM",
    "ivory coast": "CI", "cote divoire": "CI", "ivorian": "CI",
    "uganda": "UG", "kampala": "UG", "ugandan": "UG",
    "zimbabwe": "ZW", "harare": "ZW", "zimbabwean": "ZW",
    # Europe
    "uk": "GB", "united kingdom": "GB", "england": "GB", "london": "GB", "britain": "GB",
    "british": "GB", "united schendham": "GB", "you kay": "GB",
    "germany": "DE", "berlin": "DE", "german": "DE",
    "france": "FR", "paris": "FR", "french": "FR",
    "netherlands": "NL", "amsterdam": "NL", "holland": "NL", "dutch": "NL",
    "spain": "ES", "madrid": "ES", "spanish": "ES",
    "italy": "IT", "rome": "IT", "italian": "IT",
    "albania": "AL", "tirana": "AL", "albanian": "AL",
    "portugal": "PT", "lisbon": "PT", "portuguese": "PT",
    "greece": "GR", "athens": "GR", "greek": "GR",
    "poland": "PL", "warsaw": "PL", "polish": "PL",
    "ireland": "IE", "dublin": "IE", "irish": "IE",
    "belgium": "BE", "brussels": "BE", "belgian": "BE",
    "switzerland": "CH", "zurich": "CH", "swiss": "CH",
    "austria": "AT", "vienna": "AT", "austrian": "AT",
    "sweden": "SE", "stockholm": "SE", "swedish": "SE",
    "norway": "NO", "oslo": "NO", "norwegian": "NO",
    "denmark": "DK", "copenhagen": "DK", "danish": "DK",
    "finland": "FI", "helsinki": "FI", "finnish": "FI",
    "czech republic": "CZ", "czechia": "CZ", "prague": "CZ", "czech": "CZ",
    "turkey": "TR", "istanbul": "TR", "ankara": "TR", "turkish": "TR",
    "russia": "RU", "moscow": "RU", "russian": "RU",
    # Americas
    "usa": "US", "united states": "US", "america": "US", "new york": "US", "american": "US",
    "canada": "CA", "toronto": "CA", "canadian": "CA",
    "brazil": "BR", "sao paulo": "BR", "brazilian": "BR",
    "mexico": "MX", "mexico city": "MX", "mexican": "MX",
    # Middle East
    "uae": "AE", "dubai": "AE", "abu dhabi": "AE", "emirati": "AE",
    "saudi arabia": "SA", "riyadh": "SA", "saudi": "SA",
    "qatar": "QA", "doha": "QA", "qatari": "QA",
    # Asia
    "singapore": "SG", "singaporean": "SG",
    "china": "CN", "beijing": "CN", "chinese": "CN",
    "india": "IN", "delhi": "IN", "mumbai": "IN", "indian": "IN",
    "japan": "JP", "tokyo": "JP", "japanese": "JP",
    "south korea": "KR", "seoul": "KR", "korean": "KR",
    "thailand": "TH", "bangkok": "TH", "thai": "TH",
    "malaysia": "MY", "kuala lumpur": "MY", "malaysian": "MY",
    "indonesia": "ID", "jakarta": "ID", "indonesian": "ID",
    "philippines": "PH", "manila": "PH", "filipino": "PH",
    "vietnam": "VN", "hanoi": "VN", "vietnamese": "VN",
    # Oceania
    "australia": "AU", "sydney": "AU", "melbourne": "AU", "australian": "AU",
    "new zealand": "NZ", "auckland": "NZ", "kiwi": "NZ",
}

COUNTRY_NAMES: dict[str, str] = {
    "GH": "Ghana", "NG": "Nigeria", "KE": "Kenya", "ZA": "South Africa", "EG": "Egypt",
    "MA": "Morocco", "RW": "Rwanda", "TZ": "Tanzania", "ET": "Ethiopia", "SN": "Senegal",
    "CM": "Cameroon", "CI": "Ivory Coast", "UG": "Uganda", "ZW": "Zimbabwe",
    "GB": "the United Kingdom", "DE": "Germany", "FR": "France", "NL": "the Netherlands",
    "ES": "Spain", "IT": "Italy", "AL": "Albania", "PT": "Portugal", "GR": "Greece",
    "PL": "Poland", "IE": "Ireland", "BE": "Belgium", "CH": "Switzerland", "AT": "Austria",
    "SE": "Sweden", "NO": "Norway", "DK": "Denmark", "FI": "Finland", "CZ": "Czechia",
    "TR": "Turkey", "RU": "Russia", "US": "the United States", "CA": "Canada",
    "BR": "Brazil", "MX": "Mexico", "AE": "the UAE", "SA": "Saudi Arabia", "QA": "Qatar",
    "SG": "Singapore", "CN": "China", "IN": "India", "JP": "Japan", "KR": "South Korea",
    "TH": "Thailand", "MY": "Malaysia", "ID": "Indonesia", "PH": "the Philippines",
    "VN": "Vietnam", "AU": "Australia", "NZ": "New Zealand",
}

# Longest aliases first so "south africa" wins over a shorter overlapping alias.
_ALIAS_PATTERNS = [
    (re.compile(rf"\b{re.escape(alias)}\b"), code)
    for alias, code in sorted(COUNTRY_ALIASES.items(), key=lambda item: -len(item[0]))
]
_DEMONYM_SUFFIXES = ("ian", "an", "ish", "ese", "i", "n")

VISA_KEYWORDS = (
    "visa",
    "travel requirement",
    "do i need",
    "can i travel",
    "entry requirement",
    "going to",
    "traveling to",
    "travelling to",
    "travel from",
    "travel to",
)

CITIZENSHIP_PATTERNS = [
    re.compile(r"(?:i'm|i am|im)\s+(?:a\s+)?(\w+)\s+citizen"),
    re.compile(r"(?:i\s+hold|holding)\s+(?:a\s+|an\s+)?(\w+)\s+passport"),
    re.compile(r"(\w+)\s+passport"),
    re.compile(r"citizen\s+of\s+(\w+(?:\s+\w+)?)"),
    re.compile(r"nationality\s+(?:is\s+)?(\w+)"),
    re.compile(r"(?:i'm|i am|im)\s+(?:a\s+|an\s+)?(\w+)(?:\s+national)?"),
]
DESTINATION_PATTERNS = [
    re.compile(r"\b(?:going\s+to|travel(?:ing|ling)?\s+to|fly(?:ing)?\s+to|visit(?:ing)?|to)\s+(\w+(?:\s+\w+)?)"),
]
RESIDENCE_PATTERNS = [
    re.compile(r"\b(?:living\s+in|based\s+in|resident\s+of|reside\s+in|from|in)\s+(?:the\s+)?(\w+(?:\s+\w+)?)"),
    re.compile(r"(\w+)\s+resident"),
]

SMS_REQUEST_PATTERN = re.compile(
    r"\b(?:text|sms|message)\s+me\b"
    r"|\bsend\s+(?:me\s+|it\s+)?(?:a\s+|an\s+|the\s+)?(?:text|sms|message|link)\b"
    r"|\b(?:by|via|over)\s+(?:text|sms)\b"
)
AFFIRMATIVE_PATTERN = re.compile(
    r"^(?:yes|yeah|yep|yup|sure|ok|okay|please|go ahead|of course|absolutely|definitely|sounds good"
    r"|that would be (?:great|good|lovely))\b"
)
GOODBYE_PATTERN = re.compile(
    r"\b(?:good\s*bye|bye(?:-bye)?|that'?s all|that is all|hang up|have a (?:good|nice) (?:day|one))\b"
)
FILLER_PATTERN = re.compile(r"^(?:um+|uh+|ah+|oh+|hm+|mm+|er+)$")


def _normalize(text: str) -> str:
    lowered = text.lower().replace("’", "'")
    lowered = re.sub(r"[^\w\s']", " ", lowered)
    return re.sub(r"\s+", " ", lowered).strip()


def parse_country_code(text: str) -> str | None:
    """Map a country, city, demonym or ISO code mention to an ISO alpha-2 code."""

    normalized = _normalize(text)
    if not normalized:
        return None

    code = COUNTRY_ALIASES.get(normalized)
    if code:
        return code

    # Bare ISO codes only count when spoken as capitals ("GH"); "in", "my", "no" are words.
    raw = text.strip()
    if re.fullmatch(r"[A-Z]{2}", raw) and raw in COUNTRY_NAMES:
        return raw

    for pattern, code in _ALIAS_PATTERNS:
        if pattern.search(normalized):
            return code
    return None


def country_name(code: str | None) -> str:
    if not code:
        return ""
    return COUNTRY_NAMES.get(code.upper(), code.upper())


def _nationality_code(word: str) -> str | None:
    code = parse_country_code(word)
    if code:
        return code
    for suffix in _DEMONYM_SUFFIXES:
        if word.endswith(suffix) and len(word) - len(suffix) >= 3:
            code = parse_country_code(word[: -len(suffix)])
            if code:
                return code
    return None


def _first_code(patterns: list[re.Pattern[str]], text: str, *, nationality: bool = False) -> str | None:
    for pattern in patterns:
        for match in pattern.finditer(text):
            candidate = match.group(1)
            code = _nationality_code(candidate) if nationality else parse_country_code(candidate)
            if code:
                return code
    return None


def is_filler(text: str) -> bool:
    """True for hesitation-only utterances ("um", "uhh") that should not interrupt playback."""

    return bool(FILLER_PATTERN.match(_normalize(text)))


class IntentClassifier(Protocol):
    def classify(self, utterance: str) -> UtteranceFacts: ...


class RegexIntentClassifier:
    """Default classifier. Passport country takes priority over residence."""

    def classify(self, utterance: str) -> UtteranceFacts:
        text = _normalize(utterance)
        if not text:
            return UtteranceFacts()

        passport = _first_code(CITIZENSHIP_PATTERNS, text, nationality=True)
        destination = _first_code(DESTINATION_PATTERNS, text)
        if destination == passport:
            destination = None

        residence = None
        for pattern in RESIDENCE_PATTERNS:
            for match in pattern.finditer(text):
                code = parse_country_code(match.group(1))
                if code and code not in (passport, destination):
                    residence = code
                    break
            if residence:
                break

        has_keyword = any(keyword in text for keyword in VISA_KEYWORDS)
        return UtteranceFacts(
            passport=passport,
            destination=destination,
            residence=residence,
            visa_query=bool(destination or has_keyword),
            sms_consent=bool(SMS_REQUEST_PATTERN.search(text)),
            affirmative=bool(AFFIRMATIVE_PATTERN.match(text)),
            goodbye=bool(GOODBYE_PATTERN.search(text)),
        )


_DEFAULT = RegexIntentClassifier()


def classify(utterance: str) -> UtteranceFacts:
    return _DEFAULT.classify(utterance)
