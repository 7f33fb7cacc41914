"""Prompt injection detection by fusing pattern, behavioral, statistical and ML signals."""

import math
import re
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Literal

import structlog

from src.infrastructure.safety.behavioral import BehavioralAnalyzer
from src.infrastructure.safety.ml import MLScorer, NoOpMLScorer
from src.infrastructure.safety.patterns import PatternAnalyzer
from src.infrastructure.safety.schemas import (
    InjectionAnalysisResult,
    RiskLevel,
    SignalScore,
)
from src.infrastructure.safety.statistical import StatisticalAnalyzer

logger = structlog.get_logger()

Sensitivity = Literal["low", "medium", "high"]

RISK_RECOMMENDATIONS: dict[RiskLevel, tuple[str, ...]] = {
    RiskLevel.CRITICAL: (
        "Block request immediately",
        "Log incident for security review",
        "Consider rate limiting user",
    ),
    RiskLevel.HIGH: (
        "Apply strict content filtering",
        "Require human review",
        "Monitor user activity",
    ),
    RiskLevel.MEDIUM: (
        "Apply enhanced monitoring",
        "Consider warning user",
    ),
    RiskLevel.LOW: (),
}

PATTERN_RECOMMENDATIONS: dict[str, str] = {
    "encoding": "Decode and re-analyze content",
    "role_manipulation": "Reinforce system instructions",
}

_FLAG_NAMES = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}


def _parse_flags(flags: str) -> int:
    value = 0
    for char in flags:
        try:
            value |= _FLAG_NAMES[char]
        except KeyError:
            raise ValueError(f"Unsupported regex flag: {char!r}") from None
    return value


class InjectionRiskFuser:
    """Combines sub-analyzer scores into a risk level and recommendations.

    Risk comes from the strongest signal (max) while confidence is the mean
    of all signals, so one strong signal among quiet ones yields high risk
    with middling confidence.
    """

    def fuse(
        self,
        signals: Sequence[SignalScore],
        *,
        input_length: int,
        detector_version: str = "1.0.0",
    ) -> InjectionAnalysisResult:
        """Fuse sub-analyzer results.

        Args:
            signals: One SignalScore per sub-analyzer, in analyzer order.
            input_length: Length of the analyzed text.
            detector_version: Version stamped on the result.

        Returns:
            InjectionAnalysisResult for the combined signals.
        """
        scores = [signal.score for signal in signals] or [0.0]
        max_score = max(scores)
        mean_score = sum(scores) / len(scores)

        risk_level = RiskLevel.from_score(max_score)
        detected = [pattern for signal in signals for pattern in signal.patterns]

        return InjectionAnalysisResult(
            risk_level=risk_level,
            confidence=math.floor(mean_score * 100 + 0.5),  # halves round up
            detected_patterns=detected,
            recommendations=self.recommend(risk_level, {p.name for p in detected}),
            input_length=input_length,
            detector_version=detector_version,
        )

    @staticmethod
    def recommend(risk_level: RiskLevel, pattern_names: set[str]) -> list[str]:
        """Build deduplicated recommendations for a risk level and patterns."""
        recommendations = list(RISK_RECOMMENDATIONS[risk_level])
        for name, advice in PATTERN_RECOMMENDATIONS.items():
            if name in pattern_names:
                recommendations.append(advice)
        return list(dict.fromkeys(recommendations))


class PromptInjectionDetector:
    """Detects prompt injection attempts using layered analysis.

    Runs pattern matching, behavioral heuristics, statistical anomaly
    detection and an optional ML scorer on every input. All analyzers run;
    none short-circuits the others.
    """

    VERSION = "1.0.0"

    def __init__(
        self,
        *,
        sensitivity: Sensitivity = "medium",
        ml_scorer: MLScorer | None = None,
        pattern_analyzer: PatternAnalyzer | None = None,
        behavioral_analyzer: BehavioralAnalyzer | None = None,
        statistical_analyzer: StatisticalAnalyzer | None = None,
        fuser: InjectionRiskFuser | None = None,
    ) -> None:
        """Initialize the detector.

        Args:
            sensitivity: Stored for callers and reported by get_stats(); the
                risk thresholds do not depend on it.
            ml_scorer: Optional ML scorer. If None, uses NoOpMLScorer.
            pattern_analyzer: Regex analyzer. If None, creates default.
            behavioral_analyzer: Behavioral analyzer. If None, creates default.
            statistical_analyzer: Statistical analyzer. If None, creates default.
            fuser: Score fuser. If None, creates default.
        """
        self.sensitivity = sensitivity
        self._has_ml_model = ml_scorer is not None
        self._ml_scorer = ml_scorer or NoOpMLScorer()
        self._patterns = pattern_analyzer or PatternAnalyzer()
        self._behavior = behavioral_analyzer or BehavioralAnalyzer()
        self._statistics = statistical_analyzer or StatisticalAnalyzer()
        self._fuser = fuser or InjectionRiskFuser()

    async def analyze(
        self, text: str, context: Mapping[str, Any] | None = None
    ) -> InjectionAnalysisResult:
        """Analyze input for prompt injection attempts.

        Args:
            text: User input to analyze.
            context: Optional context (e.g. `expected_topic`).

        Returns:
            InjectionAnalysisResult with risk level, confidence and patterns.
        """
        signals = [
            self._patterns.analyze(text),
            self._behavior.analyze(text, context),
            self._statistics.analyze(text),
            await self._ml_scorer.score(text),
        ]

        result = self._fuser.fuse(
            signals, input_length=len(text), detector_version=self.VERSION
        )

        if result.is_injection:
            logger.warning(
                "prompt_injection_detected",
                risk_level=result.risk_level.value,
                confidence=result.confidence,
                pattern_count=len(result.detected_patterns),
                text_preview=text[:100],
            )

        return result

    def update_patterns(self, new_patterns: Iterable[Mapping[str, str]]) -> None:
        """Register new detection patterns.

        Args:
            new_patterns: Entries with `category`, `regex` and optional
                `flags` (letters from "imsx", default "i").

        Raises:
            re.error: If any regex does not compile.
            ValueError: If an entry has unsupported flags.
        """
        self._patterns.register_many(
            (
                entry["category"],
                entry["regex"],
                _parse_flags(entry.get("flags", "i")),
            )
            for entry in new_patterns
        )

    def get_stats(self) -> dict[str, Any]:
        """Get detector statistics."""
        table = self._patterns.table
        return {
            "total_patterns": table.total_patterns,
            "categories": list(table.snapshot.keys()),
            "sensitivity": self.sensitivity,
            "has_ml_model": self._has_ml_model,
        }

    async def close(self) -> None:
        """Close the ML scorer, if it holds resources."""
        if hasattr(self._ml_scorer, "close"):
            await self._ml_scorer.close()
