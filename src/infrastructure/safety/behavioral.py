"""Behavioral heuristics for prompt injection analysis."""

import re
from collections.abc import Callable, Mapping
from typing import Any

from src.infrastructure.safety.schemas import (
    DetectedPattern,
    PatternKind,
    Severity,
    SignalScore,
)

_UPPERCASE = re.compile(r"[A-Z]")
_SUSPICIOUS_PUNCTUATION = re.compile(r"[!@#$%^&*()]")


class BehavioralAnalyzer:
    """Computes structural heuristics over input text.

    Each heuristic is an independent boolean check. Every raised flag adds
    0.15 to the score, capped at 0.8 so behavior alone never reaches
    critical risk.
    """

    def __init__(
        self,
        *,
        capitalization_ratio: float = 0.3,
        punctuation_limit: int = 10,
        repetition_ratio: float = 2.0,
        flag_weight: float = 0.15,
        max_score: float = 0.8,
    ) -> None:
        """Initialize the analyzer.

        Args:
            capitalization_ratio: Uppercase-to-length ratio above which text
                counts as excessively capitalized.
            punctuation_limit: Count of suspicious punctuation above which
                text is flagged.
            repetition_ratio: Words-to-distinct-words ratio above which text
                counts as repetitive.
            flag_weight: Score added per raised flag.
            max_score: Upper bound of the behavioral score.
        """
        self._capitalization_ratio = capitalization_ratio
        self._punctuation_limit = punctuation_limit
        self._repetition_ratio = repetition_ratio
        self._flag_weight = flag_weight
        self._max_score = max_score

    def analyze(
        self, text: str, context: Mapping[str, Any] | None = None
    ) -> SignalScore:
        """Run every behavioral check against the text.

        Args:
            text: The text to check.
            context: Optional context; `expected_topic` enables the topic check.

        Returns:
            SignalScore with one pattern per raised flag.
        """
        context = context or {}
        checks: list[tuple[str, Severity, Callable[[], bool]]] = [
            ("excessive_capitalization", Severity.LOW, lambda: self._is_shouting(text)),
            ("unusual_punctuation", Severity.MEDIUM, lambda: self._has_punctuation_burst(text)),
            ("repeated_phrases", Severity.MEDIUM, lambda: self._is_repetitive(text)),
            (
                "context_mismatch",
                Severity.HIGH,
                lambda: self._is_off_topic(text, context.get("expected_topic")),
            ),
        ]

        patterns = tuple(
            DetectedPattern(kind=PatternKind.BEHAVIOR, name=name, severity=severity)
            for name, severity, check in checks
            if check()
        )
        score = min(len(patterns) * self._flag_weight, self._max_score)
        return SignalScore(score=score, patterns=patterns)

    def _is_shouting(self, text: str) -> bool:
        if not text:
            return False
        return len(_UPPERCASE.findall(text)) / len(text) > self._capitalization_ratio

    def _has_punctuation_burst(self, text: str) -> bool:
        return len(_SUSPICIOUS_PUNCTUATION.findall(text)) > self._punctuation_limit

    def _is_repetitive(self, text: str) -> bool:
        words = text.lower().split()
        if not words:
            return False
        return len(words) / len(set(words)) > self._repetition_ratio

    @staticmethod
    def _is_off_topic(text: str, expected_topic: str | None) -> bool:
        if not expected_topic:
            return False
        return expected_topic.lower() not in text.lower()
