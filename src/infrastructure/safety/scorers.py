"""Independent content safety axis scorers.

Each scorer maps text to a 0-1 safety score where higher is safer, except
personal data detection which returns a structured detection record.
Keyword scorers match substrings inside whitespace tokens, so "killing"
counts for "kill". This favors recall over precision.
"""

import re

from src.infrastructure.safety.schemas import (
    ContentType,
    LanguageScore,
    PersonalDataDetection,
    PersonalDataType,
)

TOXIC_KEYWORDS: tuple[str, ...] = (
    "hate",
    "stupid",
    "idiot",
    "moron",
    "damn",
    "hell",
    "kill",
    "die",
    "death",
    "murder",
    "violence",
)

VIOLENCE_KEYWORDS: tuple[str, ...] = (
    "assault",
    "attack",
    "bomb",
    "weapon",
    "gun",
    "knife",
    "torture",
    "abuse",
    "harm",
    "hurt",
    "pain",
    "blood",
)

ADULT_KEYWORDS: tuple[str, ...] = (
    "sexual",
    "explicit",
    "nude",
    "porn",
    "adult",
    "intimate",
    "erotic",
    "graphic",
)

PROFANITY_PHRASES: tuple[str, ...] = (
    "damn",
    "hell",
    "crap",
    "stupid",
    "idiot",
    "moron",
    "shut up",
    "screw",
    "suck",
    "dumb",
)

# Multipliers: rarer keyword families saturate with fewer hits
TOXICITY_MULTIPLIER = 10
VIOLENCE_MULTIPLIER = 8
ADULT_MULTIPLIER = 12

HATE_SPEECH_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\b(racial|ethnic|religious)\s+(slur|attack|hatred)\b",
        r"\b(nazi|fascist|supremacist)\b",
        r"\b(terrorist|extremist)\b",
    )
)
HATE_SPEECH_DETECTED_SCORE = 0.2
HATE_SPEECH_CLEAR_SCORE = 0.95

PERSONAL_DATA_PATTERNS: tuple[tuple[PersonalDataType, re.Pattern[str]], ...] = (
    (PersonalDataType.SSN, re.compile(r"\b\d{3}-\d{2}-\d{4}\b")),
    (
        PersonalDataType.CREDIT_CARD,
        re.compile(r"\b\d{4}[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b"),
    ),
    (
        PersonalDataType.EMAIL,
        re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
    ),
    (PersonalDataType.PHONE, re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b")),
)

_SHOUTING = re.compile(r"^[A-Z\s]+$")
LONG_FORM_LENGTH = 1000


def _keyword_safety_score(text: str, keywords: tuple[str, ...], multiplier: float) -> float:
    tokens = text.lower().split()
    if not tokens:
        return 1.0
    matches = sum(1 for token in tokens if any(k in token for k in keywords))
    return 1 - min(matches / len(tokens) * multiplier, 1.0)


def score_toxicity(text: str) -> float:
    """Score toxicity safety (1.0 = no toxic keywords)."""
    return _keyword_safety_score(text, TOXIC_KEYWORDS, TOXICITY_MULTIPLIER)


def score_violence(text: str) -> float:
    """Score violence safety (1.0 = no violent keywords)."""
    return _keyword_safety_score(text, VIOLENCE_KEYWORDS, VIOLENCE_MULTIPLIER)


def score_adult_content(text: str) -> float:
    """Score adult content safety (1.0 = no adult keywords)."""
    return _keyword_safety_score(text, ADULT_KEYWORDS, ADULT_MULTIPLIER)


def score_hate_speech(text: str) -> float:
    """Score hate speech safety.

    The signal is treated as near-binary: any match scores 0.2, no match 0.95.
    """
    if any(pattern.search(text) for pattern in HATE_SPEECH_PATTERNS):
        return HATE_SPEECH_DETECTED_SCORE
    return HATE_SPEECH_CLEAR_SCORE


def detect_personal_data(text: str) -> PersonalDataDetection:
    """Detect SSNs, card numbers, emails and phone numbers.

    Each pattern is tested independently, so one number can count as
    several types.
    """
    types = tuple(kind for kind, pattern in PERSONAL_DATA_PATTERNS if pattern.search(text))
    return PersonalDataDetection(detected=bool(types), types=types)


def score_language(text: str) -> LanguageScore:
    """Score language appropriateness from profanity phrase occurrences."""
    lowered = text.lower()
    count = sum(1 for phrase in PROFANITY_PHRASES if phrase in lowered)
    return LanguageScore(
        appropriateness=max(0.0, 1 - count / 10),
        profanity_detected=count > 0,
        profanity_count=count,
    )


def detect_content_type(text: str) -> ContentType:
    """Classify content shape. Informational only; never affects scoring."""
    if len(text) > LONG_FORM_LENGTH:
        return ContentType.LONG_FORM
    if "?" in text:
        return ContentType.QUESTION
    if "!" in text:
        return ContentType.EXCLAMATION
    if _SHOUTING.match(text):
        return ContentType.SHOUTING
    return ContentType.STANDARD
