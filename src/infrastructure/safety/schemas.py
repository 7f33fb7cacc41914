"""Schemas for content safety and prompt injection analysis."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from src.infrastructure.safety.exceptions import ScorerError


class Severity(str, Enum):
    """Severity of a single detected pattern."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RiskLevel(str, Enum):
    """Ordinal risk classification produced by the injection detector."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Position of this level in LOW < MEDIUM < HIGH < CRITICAL."""
        return _RISK_ORDER.index(self)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.rank >= other.rank

    @classmethod
    def from_score(cls, score: float) -> "RiskLevel":
        """Map a fused 0-1 score onto a risk level."""
        if score >= 0.8:
            return cls.CRITICAL
        if score >= 0.6:
            return cls.HIGH
        if score >= 0.3:
            return cls.MEDIUM
        return cls.LOW


_RISK_ORDER = (RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL)


class PatternKind(str, Enum):
    """Which analyzer produced a detected pattern."""

    PATTERN = "pattern"
    BEHAVIOR = "behavior"
    STATISTIC = "statistical"
    MODEL = "model"


@dataclass(frozen=True)
class DetectedPattern:
    """A single signal found during one analysis pass.

    Attributes:
        kind: Analyzer family that produced the signal.
        name: Pattern category (regex analyzer) or heuristic name.
        severity: Severity assigned to the signal.
        matched_text: Matched substring, for regex matches.
        pattern: Source of the regex that matched, for regex matches.
        value: Measured value, for statistical signals.
    """

    kind: PatternKind
    name: str
    severity: Severity
    matched_text: str | None = None
    pattern: str | None = None
    value: float | None = None


@dataclass(frozen=True)
class SignalScore:
    """Score and supporting patterns from one injection sub-analyzer.

    Attributes:
        score: Sub-analyzer score between 0.0 and 1.0.
        patterns: Patterns that contributed to the score.
    """

    score: float
    patterns: tuple[DetectedPattern, ...] = ()

    @classmethod
    def empty(cls) -> "SignalScore":
        """Create a zero score with no patterns."""
        return cls(score=0.0, patterns=())


@dataclass
class InjectionAnalysisResult:
    """Result of prompt injection analysis.

    Attributes:
        risk_level: Risk derived from the strongest sub-analyzer score.
        confidence: Mean of all sub-analyzer scores, as a 0-100 integer.
        detected_patterns: Patterns from every sub-analyzer, in analyzer order.
        recommendations: Deduplicated handling recommendations.
        input_length: Length of the analyzed text.
        timestamp: When the analysis ran (UTC).
        detector_version: Version of the detector that produced the result.
    """

    risk_level: RiskLevel
    confidence: int
    detected_patterns: list[DetectedPattern]
    recommendations: list[str]
    input_length: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    detector_version: str = "1.0.0"

    @property
    def is_injection(self) -> bool:
        """Whether the input is treated as an injection attempt."""
        return self.risk_level != RiskLevel.LOW

    @property
    def categories(self) -> set[str]:
        """Names of all detected patterns."""
        return {p.name for p in self.detected_patterns}


class ContentType(str, Enum):
    """Informational classification of evaluated content."""

    LONG_FORM = "LONG_FORM"
    QUESTION = "QUESTION"
    EXCLAMATION = "EXCLAMATION"
    SHOUTING = "SHOUTING"
    STANDARD = "STANDARD"


class PersonalDataType(str, Enum):
    """Kinds of personal data the pipeline can detect."""

    SSN = "SSN"
    CREDIT_CARD = "CREDIT_CARD"
    EMAIL = "EMAIL"
    PHONE = "PHONE"


class SafetyFlag(str, Enum):
    """Flags raised by the content safety pipeline."""

    HIGH_TOXICITY = "HIGH_TOXICITY"
    HATE_SPEECH = "HATE_SPEECH"
    VIOLENCE_CONTENT = "VIOLENCE_CONTENT"
    ADULT_CONTENT = "ADULT_CONTENT"
    PERSONAL_DATA = "PERSONAL_DATA"
    PROFANITY = "PROFANITY"
    EVALUATION_ERROR = "EVALUATION_ERROR"


@dataclass(frozen=True)
class PersonalDataDetection:
    """Personal data found in content.

    Attributes:
        detected: Whether any personal data type matched.
        types: Matched types, in detection order.
    """

    detected: bool
    types: tuple[PersonalDataType, ...] = ()

    @property
    def count(self) -> int:
        """Number of distinct personal data types found."""
        return len(self.types)

    @classmethod
    def none(cls) -> "PersonalDataDetection":
        """Create an empty detection."""
        return cls(detected=False, types=())


@dataclass(frozen=True)
class LanguageScore:
    """Language appropriateness of content.

    Attributes:
        appropriateness: Score between 0.0 and 1.0 (1.0 = fully appropriate).
        profanity_detected: Whether any profanity phrase was found.
        profanity_count: Number of distinct profanity phrases found.
    """

    appropriateness: float
    profanity_detected: bool
    profanity_count: int


@dataclass(frozen=True)
class AxisScores:
    """Per-axis safety scores (1.0 = safest)."""

    toxicity: float
    hate_speech: float
    violence: float
    adult_content: float

    def values(self) -> tuple[float, float, float, float]:
        """All four axis scores in a fixed order."""
        return (self.toxicity, self.hate_speech, self.violence, self.adult_content)


@dataclass
class ContentSafetyResult:
    """Result of content safety evaluation.

    Attributes:
        axis_scores: Per-axis scores, None for a degraded result.
        personal_data: Personal data detection, None for a degraded result.
        language: Language appropriateness, None for a degraded result.
        content_type: Informational content classification.
        overall_score: Weighted safety score between 0.0 and 1.0.
        confidence: Confidence in the overall score between 0.0 and 1.0.
        flags: Threshold-triggered flags.
        processing_time_ms: Time spent evaluating.
        error: The scorer failure behind a degraded result.
    """

    axis_scores: AxisScores | None
    personal_data: PersonalDataDetection | None
    language: LanguageScore | None
    content_type: ContentType | None
    overall_score: float
    confidence: float
    flags: list[SafetyFlag]
    processing_time_ms: float = 0.0
    error: ScorerError | None = None

    @property
    def is_degraded(self) -> bool:
        """Whether this result stands in for a failed evaluation."""
        return self.error is not None

    @property
    def error_message(self) -> str | None:
        """Message of the scorer failure, if any."""
        return self.error.message if self.error else None

    @classmethod
    def degraded(
        cls, error: ScorerError, *, processing_time_ms: float = 0.0
    ) -> "ContentSafetyResult":
        """Create a zero-score result for a failed evaluation."""
        return cls(
            axis_scores=None,
            personal_data=None,
            language=None,
            content_type=None,
            overall_score=0.0,
            confidence=0.0,
            flags=[SafetyFlag.EVALUATION_ERROR],
            processing_time_ms=processing_time_ms,
            error=error,
        )
