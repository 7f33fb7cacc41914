"""Guardrail orchestration: multi-layer input and output evaluation."""

from src.modules.guardrails.collaborators import (
    InMemoryAuditSink,
    NoOpBiasDetector,
    PolicyRegistry,
    parse_time_range,
)
from src.modules.guardrails.factory import create_ml_scorer, create_orchestrator
from src.modules.guardrails.protocol import AuditSink, BiasDetector, ComplianceValidator
from src.modules.guardrails.schemas import (
    REDACTED,
    BatchResult,
    BatchSummary,
    BiasResult,
    ComplianceResult,
    EvaluationDirection,
    EvaluationRecord,
    GuardrailDecision,
    Policy,
    SafetyResults,
)
from src.modules.guardrails.service import GuardrailOrchestrator

__all__ = [
    "REDACTED",
    "AuditSink",
    "BatchResult",
    "BatchSummary",
    "BiasDetector",
    "BiasResult",
    "ComplianceResult",
    "ComplianceValidator",
    "EvaluationDirection",
    "EvaluationRecord",
    "GuardrailDecision",
    "GuardrailOrchestrator",
    "InMemoryAuditSink",
    "NoOpBiasDetector",
    "Policy",
    "PolicyRegistry",
    "SafetyResults",
    "create_ml_scorer",
    "create_orchestrator",
    "parse_time_range",
]
