"""Statistical anomaly detection for prompt injection analysis."""

import math
from collections import Counter
from dataclasses import dataclass

from src.infrastructure.safety.schemas import (
    DetectedPattern,
    PatternKind,
    Severity,
    SignalScore,
)


def shannon_entropy(text: str) -> float:
    """Calculate Shannon entropy of text in bits per character."""
    if not text:
        return 0.0
    length = len(text)
    entropy = 0.0
    for count in Counter(text).values():
        p = count / length
        entropy -= p * math.log2(p)
    return entropy


@dataclass(frozen=True)
class TextStatistics:
    """Raw statistics of a text."""

    length: int
    word_count: int
    unique_chars: int
    entropy: float

    @property
    def diversity(self) -> float:
        """Distinct characters per character (0.0 for empty text)."""
        return self.unique_chars / self.length if self.length else 0.0

    @classmethod
    def of(cls, text: str) -> "TextStatistics":
        return cls(
            length=len(text),
            word_count=len(text.split()),
            unique_chars=len(set(text)),
            entropy=shannon_entropy(text),
        )


class StatisticalAnalyzer:
    """Flags length, entropy and character-diversity anomalies.

    Normal English text sits around 3.5-4.5 bits/char; encoded or random
    payloads score higher. Long runs of the same few characters show up
    as low diversity.
    """

    def __init__(
        self,
        *,
        max_length: int = 5000,
        entropy_threshold: float = 4.5,
        min_diversity: float = 0.3,
        flag_weight: float = 0.1,
    ) -> None:
        self._max_length = max_length
        self._entropy_threshold = entropy_threshold
        self._min_diversity = min_diversity
        self._flag_weight = flag_weight

    def analyze(self, text: str) -> SignalScore:
        """Compute text statistics and flag anomalies.

        Args:
            text: The text to check.

        Returns:
            SignalScore where each anomaly adds 0.1.
        """
        stats = TextStatistics.of(text)
        patterns: list[DetectedPattern] = []

        if stats.length > self._max_length:
            patterns.append(
                DetectedPattern(
                    kind=PatternKind.STATISTIC,
                    name="excessive_length",
                    severity=Severity.MEDIUM,
                    value=float(stats.length),
                )
            )

        if stats.entropy > self._entropy_threshold:
            patterns.append(
                DetectedPattern(
                    kind=PatternKind.STATISTIC,
                    name="high_entropy",
                    severity=Severity.HIGH,
                    value=stats.entropy,
                )
            )

        # Empty text has no diversity to measure
        if stats.length and stats.diversity < self._min_diversity:
            patterns.append(
                DetectedPattern(
                    kind=PatternKind.STATISTIC,
                    name="low_character_diversity",
                    severity=Severity.MEDIUM,
                    value=stats.diversity,
                )
            )

        return SignalScore(
            score=len(patterns) * self._flag_weight, patterns=tuple(patterns)
        )
