"""Protocols for the external collaborators of the guardrail orchestrator."""

from collections.abc import Mapping
from typing import Any, Protocol

from src.modules.guardrails.schemas import (
    BiasResult,
    ComplianceResult,
    EvaluationRecord,
    Policy,
)


class BiasDetector(Protocol):
    """Protocol for bias detection engines."""

    async def analyze(self, text: str, context: Mapping[str, Any]) -> BiasResult:
        """Analyze text for bias.

        Args:
            text: The text to analyze.
            context: Evaluation context.

        Returns:
            BiasResult with the detection flag and confidence.
        """
        ...


class ComplianceValidator(Protocol):
    """Protocol for compliance frameworks."""

    async def validate(self, text: str, context: Mapping[str, Any]) -> ComplianceResult:
        """Validate input text against the active policies."""
        ...

    async def validate_output(
        self, output: str, original_input: str, context: Mapping[str, Any]
    ) -> ComplianceResult:
        """Validate a generated response in light of the prompt that produced it."""
        ...

    async def get_policy(self, name: str) -> Policy | None:
        """Look up a policy by name. Returns None if unknown."""
        ...

    async def generate_report(self, time_range: str) -> dict[str, Any]:
        """Build a compliance report for the given time range (e.g. "24h")."""
        ...


class AuditSink(Protocol):
    """Protocol for audit loggers.

    The sink owns retention of every record it receives.
    """

    async def log_evaluation(self, record: EvaluationRecord) -> None:
        """Record a completed evaluation."""
        ...

    async def log_error(self, record: EvaluationRecord) -> None:
        """Record a failed evaluation."""
        ...

    async def get_metrics(self, time_range: str) -> dict[str, Any]:
        """Summarize recorded evaluations within the time range (e.g. "1h")."""
        ...
