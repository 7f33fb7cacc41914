"""Default collaborator implementations for the guardrail orchestrator."""

import re
from collections import Counter, deque
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog

from src.modules.guardrails.schemas import (
    BiasResult,
    ComplianceResult,
    EvaluationRecord,
    GuardrailDecision,
    Policy,
)

logger = structlog.get_logger()

_TIME_RANGE = re.compile(r"^(\d+)([smhd])$")
_TIME_UNITS = {"s": "seconds", "m": "minutes", "h": "hours", "d": "days"}


def parse_time_range(time_range: str) -> timedelta:
    """Parse a time range like "30m", "1h", "24h" or "7d".

    Raises:
        ValueError: If the time range is malformed.
    """
    match = _TIME_RANGE.match(time_range.strip())
    if not match:
        raise ValueError(f"Invalid time range: {time_range!r}")
    amount, unit = match.groups()
    return timedelta(**{_TIME_UNITS[unit]: int(amount)})


class NoOpBiasDetector:
    """No-op bias detector that never reports bias.

    Use this when no bias detection engine is configured.
    """

    async def analyze(
        self,
        text: str,  # noqa: ARG002
        context: Mapping[str, Any],  # noqa: ARG002
    ) -> BiasResult:
        """Always returns no bias with full confidence."""
        return BiasResult(bias_detected=False, confidence=1.0)


class PolicyRegistry:
    """In-process compliance validator backed by a set of named policies.

    Text is non-compliant when it contains a blocked term of the policy
    named in the context, or of any registered policy when the context
    names none.
    """

    def __init__(
        self,
        policies: Iterable[Policy] = (),
        *,
        compliance_level: str = "enterprise",
        confidence: float = 0.9,
    ) -> None:
        """Initialize the registry.

        Args:
            policies: Policies to register.
            compliance_level: Reported in compliance reports.
            confidence: Confidence attached to every validation result.
        """
        self._policies = {policy.name: policy for policy in policies}
        self._compliance_level = compliance_level
        self._confidence = confidence
        self._validations = 0
        self._violations: Counter[str] = Counter()

    def register(self, policy: Policy) -> None:
        """Add or replace a policy."""
        self._policies[policy.name] = policy

    async def validate(self, text: str, context: Mapping[str, Any]) -> ComplianceResult:
        """Validate text against the applicable policies."""
        return self._check(text, context)

    async def validate_output(
        self,
        output: str,
        original_input: str,  # noqa: ARG002
        context: Mapping[str, Any],
    ) -> ComplianceResult:
        """Validate a generated response against the applicable policies."""
        return self._check(output, context)

    async def get_policy(self, name: str) -> Policy | None:
        """Look up a policy by name."""
        return self._policies.get(name)

    async def generate_report(self, time_range: str) -> dict[str, Any]:
        """Summarize validations performed so far."""
        return {
            "time_range": time_range,
            "compliance_level": self._compliance_level,
            "policies": sorted(self._policies),
            "validations": self._validations,
            "violations": sum(self._violations.values()),
            "violations_by_policy": dict(self._violations),
        }

    def _check(self, text: str, context: Mapping[str, Any]) -> ComplianceResult:
        self._validations += 1
        policy_name = context.get("policy")
        if policy_name in self._policies:
            applicable = [self._policies[policy_name]]
        else:
            applicable = list(self._policies.values())

        lowered = text.lower()
        violations = tuple(
            policy.name
            for policy in applicable
            if any(term.lower() in lowered for term in policy.blocked_terms)
        )
        self._violations.update(violations)

        if violations:
            logger.info("compliance_violation", policies=list(violations))

        return ComplianceResult(
            compliant=not violations,
            confidence=self._confidence,
            violations=violations,
        )


class InMemoryAuditSink:
    """Audit sink keeping a bounded window of records in memory.

    Every record is also emitted as a structured log event.
    """

    def __init__(self, *, max_records: int = 10000) -> None:
        """Initialize the sink.

        Args:
            max_records: Oldest records are dropped beyond this many.
        """
        self._records: deque[EvaluationRecord] = deque(maxlen=max_records)

    @property
    def records(self) -> list[EvaluationRecord]:
        """Retained records, oldest first."""
        return list(self._records)

    async def log_evaluation(self, record: EvaluationRecord) -> None:
        """Retain and log a completed evaluation."""
        self._records.append(record)
        logger.info(
            "audit_evaluation",
            evaluation_id=record.evaluation_id,
            direction=record.direction.value,
            decision=record.decision.value,
            confidence=record.confidence,
            processing_time_ms=round(record.processing_time_ms, 2),
        )

    async def log_error(self, record: EvaluationRecord) -> None:
        """Retain and log a failed evaluation."""
        self._records.append(record)
        logger.error(
            "audit_evaluation_error",
            evaluation_id=record.evaluation_id,
            direction=record.direction.value,
            error=record.error_message,
        )

    async def get_metrics(self, time_range: str) -> dict[str, Any]:
        """Summarize records within the time range.

        Raises:
            ValueError: If the time range is malformed.
        """
        cutoff = datetime.now(UTC) - parse_time_range(time_range)
        window = [r for r in self._records if r.timestamp >= cutoff]
        decisions = Counter(r.decision.value for r in window)

        return {
            "time_range": time_range,
            "total": len(window),
            "decisions": {
                d.value: decisions.get(d.value, 0)
                for d in GuardrailDecision
                if d.is_terminal
            },
            "errors": decisions.get(GuardrailDecision.ERROR.value, 0),
            "average_processing_time_ms": (
                sum(r.processing_time_ms for r in window) / len(window) if window else 0.0
            ),
            "average_confidence": (
                sum(r.confidence for r in window) / len(window) if window else 0.0
            ),
        }
