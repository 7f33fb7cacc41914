"""Content safety evaluation by weighted fusion of axis scores."""

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import structlog

from src.infrastructure.safety import scorers
from src.infrastructure.safety.exceptions import ScorerError
from src.infrastructure.safety.schemas import (
    AxisScores,
    ContentSafetyResult,
    ContentType,
    LanguageScore,
    PersonalDataDetection,
    SafetyFlag,
)

logger = structlog.get_logger()

# Weights of the overall score; they sum to 1.0
TOXICITY_WEIGHT = 0.25
HATE_SPEECH_WEIGHT = 0.30
VIOLENCE_WEIGHT = 0.25
ADULT_CONTENT_WEIGHT = 0.15
LANGUAGE_WEIGHT = 0.05

PERSONAL_DATA_PENALTY = 0.8

BASE_CONFIDENCE = 0.7
EXTREME_SCORE_BONUS = 0.1
MAX_CONFIDENCE = 0.95


@dataclass(frozen=True)
class ContentSafetyThresholds:
    """Per-axis flag thresholds. An axis score below its threshold is flagged."""

    toxicity: float = 0.7
    hate_speech: float = 0.8
    violence: float = 0.75
    adult_content: float = 0.85


@dataclass(frozen=True)
class ContentAxisScorers:
    """The scoring functions used by the pipeline.

    Defaults to the keyword/regex scorers in `scorers`; any field can be
    replaced, e.g. with a model-backed scorer.
    """

    toxicity: Callable[[str], float] = scorers.score_toxicity
    hate_speech: Callable[[str], float] = scorers.score_hate_speech
    violence: Callable[[str], float] = scorers.score_violence
    adult_content: Callable[[str], float] = scorers.score_adult_content
    personal_data: Callable[[str], PersonalDataDetection] = scorers.detect_personal_data
    language: Callable[[str], LanguageScore] = scorers.score_language
    content_type: Callable[[str], ContentType] = scorers.detect_content_type


class ContentSafetyAggregator:
    """Combines axis scores into an overall score, confidence and flags."""

    def __init__(self, thresholds: ContentSafetyThresholds | None = None) -> None:
        self._thresholds = thresholds or ContentSafetyThresholds()

    @property
    def thresholds(self) -> ContentSafetyThresholds:
        return self._thresholds

    def overall_score(
        self,
        axes: AxisScores,
        language: LanguageScore,
        personal_data: PersonalDataDetection,
    ) -> float:
        """Weighted sum of axis scores, penalized when personal data is present."""
        score = (
            axes.toxicity * TOXICITY_WEIGHT
            + axes.hate_speech * HATE_SPEECH_WEIGHT
            + axes.violence * VIOLENCE_WEIGHT
            + axes.adult_content * ADULT_CONTENT_WEIGHT
            + language.appropriateness * LANGUAGE_WEIGHT
        )
        if personal_data.detected:
            score *= PERSONAL_DATA_PENALTY
        return max(0.0, min(1.0, score))

    @staticmethod
    def confidence(axes: AxisScores) -> float:
        """Confidence rises only with clearly safe or clearly unsafe axes."""
        extreme = sum(1 for score in axes.values() if score < 0.3 or score > 0.9)
        return min(MAX_CONFIDENCE, BASE_CONFIDENCE + extreme * EXTREME_SCORE_BONUS)

    def flags(
        self,
        axes: AxisScores,
        language: LanguageScore,
        personal_data: PersonalDataDetection,
    ) -> list[SafetyFlag]:
        """Compare each axis against its threshold and add unconditional flags."""
        thresholds = self._thresholds
        flags: list[SafetyFlag] = []

        if axes.toxicity < thresholds.toxicity:
            flags.append(SafetyFlag.HIGH_TOXICITY)
        if axes.hate_speech < thresholds.hate_speech:
            flags.append(SafetyFlag.HATE_SPEECH)
        if axes.violence < thresholds.violence:
            flags.append(SafetyFlag.VIOLENCE_CONTENT)
        if axes.adult_content < thresholds.adult_content:
            flags.append(SafetyFlag.ADULT_CONTENT)
        if personal_data.detected:
            flags.append(SafetyFlag.PERSONAL_DATA)
        if language.profanity_detected:
            flags.append(SafetyFlag.PROFANITY)

        return flags

    def aggregate(
        self,
        axes: AxisScores,
        language: LanguageScore,
        personal_data: PersonalDataDetection,
        *,
        content_type: ContentType | None = None,
    ) -> ContentSafetyResult:
        """Build a complete result from scorer outputs."""
        return ContentSafetyResult(
            axis_scores=axes,
            personal_data=personal_data,
            language=language,
            content_type=content_type,
            overall_score=self.overall_score(axes, language, personal_data),
            confidence=self.confidence(axes),
            flags=self.flags(axes, language, personal_data),
        )


class ContentSafetyPipeline:
    """Evaluates content against every safety axis.

    Scorer failures never propagate: they produce a degraded result with
    zero score and confidence and an EVALUATION_ERROR flag.
    """

    def __init__(
        self,
        *,
        toxicity_threshold: float = 0.7,
        hate_speech_threshold: float = 0.8,
        violence_threshold: float = 0.75,
        adult_content_threshold: float = 0.85,
        enable_personal_data_detection: bool = True,
        axis_scorers: ContentAxisScorers | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            toxicity_threshold: Toxicity score below which content is flagged.
            hate_speech_threshold: Hate speech score below which content is flagged.
            violence_threshold: Violence score below which content is flagged.
            adult_content_threshold: Adult content score below which content is flagged.
            enable_personal_data_detection: If False, personal data is never reported.
            axis_scorers: Scoring functions. If None, uses the built-in scorers.
        """
        self._aggregator = ContentSafetyAggregator(
            ContentSafetyThresholds(
                toxicity=toxicity_threshold,
                hate_speech=hate_speech_threshold,
                violence=violence_threshold,
                adult_content=adult_content_threshold,
            )
        )
        self._detect_personal_data = enable_personal_data_detection
        self._scorers = axis_scorers or ContentAxisScorers()

    @property
    def thresholds(self) -> ContentSafetyThresholds:
        return self._aggregator.thresholds

    def evaluate(
        self,
        content: str,
        context: Mapping[str, Any] | None = None,  # noqa: ARG002
    ) -> ContentSafetyResult:
        """Evaluate content safety.

        Args:
            content: The text to evaluate.
            context: Optional evaluation context (currently unused by scoring).

        Returns:
            ContentSafetyResult, degraded if any scorer failed.
        """
        start = time.perf_counter()
        current = "content_type"

        try:
            content_type = self._scorers.content_type(content)
            current = "toxicity"
            toxicity = self._scorers.toxicity(content)
            current = "hate_speech"
            hate_speech = self._scorers.hate_speech(content)
            current = "violence"
            violence = self._scorers.violence(content)
            current = "adult_content"
            adult_content = self._scorers.adult_content(content)
            current = "personal_data"
            personal_data = (
                self._scorers.personal_data(content)
                if self._detect_personal_data
                else PersonalDataDetection.none()
            )
            current = "language"
            language = self._scorers.language(content)

            result = self._aggregator.aggregate(
                AxisScores(
                    toxicity=toxicity,
                    hate_speech=hate_speech,
                    violence=violence,
                    adult_content=adult_content,
                ),
                language,
                personal_data,
                content_type=content_type,
            )

        except Exception as e:
            logger.error(
                "content_safety_evaluation_failed",
                scorer=current,
                error=str(e),
                error_type=type(e).__name__,
            )
            error = ScorerError(f"{current} scorer failed: {e}", scorer=current)
            error.__cause__ = e
            return ContentSafetyResult.degraded(
                error, processing_time_ms=(time.perf_counter() - start) * 1000
            )

        result.processing_time_ms = (time.perf_counter() - start) * 1000

        if result.flags:
            logger.warning(
                "content_safety_flagged",
                flags=[flag.value for flag in result.flags],
                overall_score=round(result.overall_score, 3),
                content_length=len(content),
            )

        return result
