"""Construction of a guardrail orchestrator from application settings."""

from collections.abc import Iterable

import structlog

from src.config import Settings, get_settings
from src.infrastructure.safety.content import ContentSafetyPipeline
from src.infrastructure.safety.detector import PromptInjectionDetector
from src.infrastructure.safety.ml import HTTPMLScorer, MLScorer
from src.infrastructure.safety.schemas import RiskLevel
from src.modules.guardrails.collaborators import (
    InMemoryAuditSink,
    NoOpBiasDetector,
    PolicyRegistry,
)
from src.modules.guardrails.protocol import AuditSink, BiasDetector, ComplianceValidator
from src.modules.guardrails.schemas import Policy
from src.modules.guardrails.service import GuardrailOrchestrator

logger = structlog.get_logger()


def create_ml_scorer(settings: Settings) -> MLScorer | None:
    """Create the remote ML scorer when an endpoint is configured."""
    if not settings.ml_scorer_url:
        return None

    api_key = (
        settings.ml_scorer_api_key.get_secret_value()
        if settings.ml_scorer_api_key
        else None
    )
    logger.info("ml_scorer_enabled", endpoint=settings.ml_scorer_url)
    return HTTPMLScorer(
        settings.ml_scorer_url,
        api_key=api_key,
        timeout_seconds=settings.ml_scorer_timeout_seconds,
        circuit_breaker_fail_max=settings.circuit_breaker_fail_max,
        circuit_breaker_timeout=settings.circuit_breaker_timeout,
    )


def create_orchestrator(
    settings: Settings | None = None,
    *,
    bias_detector: BiasDetector | None = None,
    compliance_validator: ComplianceValidator | None = None,
    audit_sink: AuditSink | None = None,
    policies: Iterable[Policy] = (),
) -> GuardrailOrchestrator:
    """Wire a GuardrailOrchestrator from settings.

    Args:
        settings: Application settings. If None, uses get_settings().
        bias_detector: External bias detector. If None, uses NoOpBiasDetector.
        compliance_validator: External compliance validator. If None, uses a
            PolicyRegistry holding the configured policies.
        audit_sink: External audit sink. If None, uses InMemoryAuditSink.
        policies: Extra policies for the default PolicyRegistry, registered
            after those declared in `settings.policies`.

    Returns:
        A configured GuardrailOrchestrator.
    """
    settings = settings or get_settings()

    injection_detector = PromptInjectionDetector(
        sensitivity=settings.injection_sensitivity,
        ml_scorer=create_ml_scorer(settings),
    )
    configured_policies = [
        Policy(
            name=p.name,
            strict_enforcement=p.strict_enforcement,
            description=p.description,
            blocked_terms=tuple(p.blocked_terms),
        )
        for p in settings.policies
    ]
    content_pipeline = ContentSafetyPipeline(
        toxicity_threshold=settings.toxicity_threshold,
        hate_speech_threshold=settings.hate_speech_threshold,
        violence_threshold=settings.violence_threshold,
        adult_content_threshold=settings.adult_content_threshold,
        enable_personal_data_detection=settings.enable_personal_data_detection,
    )

    return GuardrailOrchestrator(
        injection_detector=injection_detector,
        content_pipeline=content_pipeline,
        bias_detector=bias_detector or NoOpBiasDetector(),
        compliance_validator=compliance_validator
        or PolicyRegistry(
            [*configured_policies, *policies],
            compliance_level=settings.compliance_level,
        ),
        audit_sink=audit_sink or InMemoryAuditSink(max_records=settings.audit_max_records),
        strict_mode=settings.strict_mode,
        enable_audit=settings.enable_audit,
        compliance_level=settings.compliance_level,
        performance_mode=settings.performance_mode,
        injection_block_level=RiskLevel(settings.injection_block_level),
        input_moderation_threshold=settings.input_moderation_threshold,
        output_filter_threshold=settings.output_filter_threshold,
    )
