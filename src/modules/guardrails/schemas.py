"""Guardrail decision and evaluation record schemas."""

import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from src.infrastructure.safety.exceptions import GuardrailError
from src.infrastructure.safety.schemas import (
    ContentSafetyResult,
    InjectionAnalysisResult,
)

REDACTED = "[REDACTED]"


class GuardrailDecision(str, Enum):
    """Decision reached by an evaluation. PENDING is the only non-terminal state."""

    PENDING = "PENDING"
    ALLOW = "ALLOW"
    BLOCK = "BLOCK"
    MODERATE = "MODERATE"
    REVIEW = "REVIEW"
    FILTER = "FILTER"
    ERROR = "ERROR"

    @property
    def is_terminal(self) -> bool:
        return self is not GuardrailDecision.PENDING


class EvaluationDirection(str, Enum):
    """Whether a record evaluated a prompt or a generated response."""

    INPUT = "input"
    OUTPUT = "output"


@dataclass(frozen=True)
class BiasResult:
    """Result from a bias detector.

    Attributes:
        bias_detected: Whether bias was found.
        confidence: Detector confidence between 0.0 and 1.0.
        categories: Optional bias categories reported by the detector.
    """

    bias_detected: bool
    confidence: float
    categories: tuple[str, ...] = ()


@dataclass(frozen=True)
class ComplianceResult:
    """Result from a compliance validator.

    Attributes:
        compliant: Whether the text complies with the active policies.
        confidence: Optional validator confidence between 0.0 and 1.0.
        violations: Names of violated rules, if any.
    """

    compliant: bool
    confidence: float | None = None
    violations: tuple[str, ...] = ()


@dataclass(frozen=True)
class Policy:
    """A named compliance policy.

    Attributes:
        name: Unique policy name.
        strict_enforcement: If True, any non-ALLOW decision violates the policy.
        description: Human-readable description.
        blocked_terms: Terms whose presence makes text non-compliant.
    """

    name: str
    strict_enforcement: bool = False
    description: str = ""
    blocked_terms: tuple[str, ...] = ()


@dataclass
class SafetyResults:
    """Sub-results gathered by the guardrail layers.

    A layer that never ran (short-circuit or earlier failure) stays None.
    """

    injection: InjectionAnalysisResult | None = None
    content_safety: ContentSafetyResult | None = None
    bias: BiasResult | None = None
    compliance: ComplianceResult | None = None


def generate_evaluation_id() -> str:
    """Generate a unique evaluation id (`eval_<epoch ms>_<random>`)."""
    return f"eval_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


@dataclass
class EvaluationRecord:
    """Outcome of one guardrail evaluation.

    Attributes:
        evaluation_id: Unique id generated per call.
        direction: Input or output evaluation.
        content: Evaluated text, or "[REDACTED]" when auditing is disabled.
        context: Copy of the caller's context.
        original_input: Prompt that produced the output (output path only).
        decision: Final decision.
        confidence: Decision confidence between 0.0 and 1.0.
        safety: Sub-results from each layer that ran.
        processing_time_ms: Wall time of the evaluation.
        timestamp: When the evaluation started (UTC).
        error: Failure behind an ERROR decision.
    """

    direction: EvaluationDirection
    content: str
    context: dict[str, Any] = field(default_factory=dict)
    original_input: str | None = None
    evaluation_id: str = field(default_factory=generate_evaluation_id)
    decision: GuardrailDecision = GuardrailDecision.PENDING
    confidence: float = 0.0
    safety: SafetyResults = field(default_factory=SafetyResults)
    processing_time_ms: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    error: GuardrailError | None = None

    @property
    def error_message(self) -> str | None:
        """Message of the failure behind an ERROR decision."""
        return self.error.message if self.error else None

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe representation for audit sinks."""
        injection = self.safety.injection
        content_safety = self.safety.content_safety
        bias = self.safety.bias
        compliance = self.safety.compliance

        return {
            "evaluation_id": self.evaluation_id,
            "timestamp": self.timestamp.isoformat(),
            "direction": self.direction.value,
            "content": self.content,
            "original_input": self.original_input,
            "context": self.context,
            "decision": self.decision.value,
            "confidence": self.confidence,
            "processing_time_ms": self.processing_time_ms,
            "error": self.error_message,
            "safety": {
                "injection": {
                    "risk_level": injection.risk_level.value,
                    "is_injection": injection.is_injection,
                    "confidence": injection.confidence,
                    "patterns": sorted(injection.categories),
                    "recommendations": injection.recommendations,
                }
                if injection
                else None,
                "content_safety": {
                    "overall_score": content_safety.overall_score,
                    "confidence": content_safety.confidence,
                    "flags": [flag.value for flag in content_safety.flags],
                }
                if content_safety
                else None,
                "bias": {
                    "bias_detected": bias.bias_detected,
                    "confidence": bias.confidence,
                }
                if bias
                else None,
                "compliance": {
                    "compliant": compliance.compliant,
                    "confidence": compliance.confidence,
                    "violations": list(compliance.violations),
                }
                if compliance
                else None,
            },
        }


@dataclass
class BatchSummary:
    """Aggregate view over a batch of evaluations."""

    total: int
    allowed: int
    blocked: int
    moderated: int
    reviewed: int
    filtered: int
    errors: int
    average_processing_time_ms: float

    @classmethod
    def from_records(cls, records: list[EvaluationRecord]) -> "BatchSummary":
        """Count decisions and average processing time over all records."""

        def count(decision: GuardrailDecision) -> int:
            return sum(1 for r in records if r.decision == decision)

        return cls(
            total=len(records),
            allowed=count(GuardrailDecision.ALLOW),
            blocked=count(GuardrailDecision.BLOCK),
            moderated=count(GuardrailDecision.MODERATE),
            reviewed=count(GuardrailDecision.REVIEW),
            filtered=count(GuardrailDecision.FILTER),
            errors=count(GuardrailDecision.ERROR),
            average_processing_time_ms=(
                sum(r.processing_time_ms for r in records) / len(records)
                if records
                else 0.0
            ),
        )


@dataclass
class BatchResult:
    """Per-item records, in input order, plus their summary."""

    results: list[EvaluationRecord]
    summary: BatchSummary
