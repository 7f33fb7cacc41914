"""Guardrail orchestrator sequencing all safety layers into one decision."""

import asyncio
import time
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import Any

import structlog

from src.infrastructure.observability import add_span_attributes, get_tracer, traced
from src.infrastructure.safety.content import ContentSafetyPipeline
from src.infrastructure.safety.detector import PromptInjectionDetector
from src.infrastructure.safety.exceptions import (
    OrchestrationError,
    PolicyNotFoundError,
    PolicyViolationError,
)
from src.infrastructure.safety.schemas import RiskLevel
from src.modules.guardrails.collaborators import (
    InMemoryAuditSink,
    NoOpBiasDetector,
    PolicyRegistry,
)
from src.modules.guardrails.protocol import AuditSink, BiasDetector, ComplianceValidator
from src.modules.guardrails.schemas import (
    REDACTED,
    BatchResult,
    BatchSummary,
    EvaluationDirection,
    EvaluationRecord,
    GuardrailDecision,
)

logger = structlog.get_logger()
tracer = get_tracer(__name__)

COMPLIANCE_BLOCK_CONFIDENCE = 0.95
DEFAULT_OUTPUT_COMPLIANCE_CONFIDENCE = 0.9


@contextmanager
def _layer(name: str) -> Iterator[None]:
    """Attribute any failure inside the block to the named layer."""
    try:
        yield
    except OrchestrationError:
        raise
    except Exception as e:
        raise OrchestrationError(
            f"{name} layer failed: {str(e) or type(e).__name__}", layer=name
        ) from e


class GuardrailOrchestrator:
    """Runs every guardrail layer and accumulates a single decision.

    Input evaluation order:
    1. Prompt injection detection (the only short-circuit)
    2. Content safety scoring
    3. Bias detection
    4. Compliance validation

    Decisions only escalate; compliance failure overrides everything
    after the injection check. Failures in any layer produce an ERROR
    record instead of an exception.
    """

    def __init__(
        self,
        *,
        injection_detector: PromptInjectionDetector | None = None,
        content_pipeline: ContentSafetyPipeline | None = None,
        bias_detector: BiasDetector | None = None,
        compliance_validator: ComplianceValidator | None = None,
        audit_sink: AuditSink | None = None,
        strict_mode: bool = False,
        enable_audit: bool = True,
        compliance_level: str = "enterprise",
        performance_mode: str = "balanced",
        injection_block_level: RiskLevel = RiskLevel.HIGH,
        input_moderation_threshold: float = 0.7,
        output_filter_threshold: float = 0.8,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            injection_detector: Prompt injection detector. If None, creates default.
            content_pipeline: Content safety pipeline. If None, creates default.
            bias_detector: Bias detector. If None, uses NoOpBiasDetector.
            compliance_validator: Compliance validator. If None, uses an empty
                PolicyRegistry.
            audit_sink: Audit sink. If None, uses InMemoryAuditSink.
            strict_mode: Escalate detected bias to REVIEW.
            enable_audit: Keep raw text in records and send completed
                records to the audit sink. Errors are always audited.
            compliance_level: Passed through for collaborators and reports.
            performance_mode: Passed through for collaborators.
            injection_block_level: Lowest injection risk that blocks input
                without running the remaining layers.
            input_moderation_threshold: Content score below which input is moderated.
            output_filter_threshold: Content score below which output is filtered.
        """
        self._injection_detector = injection_detector or PromptInjectionDetector()
        self._content_pipeline = content_pipeline or ContentSafetyPipeline()
        self._bias_detector: BiasDetector = bias_detector or NoOpBiasDetector()
        self._compliance: ComplianceValidator = compliance_validator or PolicyRegistry(
            compliance_level=compliance_level
        )
        self._audit_sink: AuditSink = audit_sink or InMemoryAuditSink()
        self.strict_mode = strict_mode
        self.enable_audit = enable_audit
        self.compliance_level = compliance_level
        self.performance_mode = performance_mode
        self._block_level = injection_block_level
        self._moderation_threshold = input_moderation_threshold
        self._filter_threshold = output_filter_threshold

    async def evaluate_input(
        self, text: str, context: Mapping[str, Any] | None = None
    ) -> EvaluationRecord:
        """Evaluate a user prompt through every safety layer.

        Args:
            text: The user input to evaluate.
            context: Optional evaluation context passed to every layer.

        Returns:
            EvaluationRecord with a terminal decision. Never raises.
        """
        start = time.perf_counter()
        record = EvaluationRecord(
            direction=EvaluationDirection.INPUT,
            content=self._retain(text),
            context=dict(context or {}),
        )

        with tracer.start_as_current_span("guardrail.evaluate_input") as span:
            span.set_attribute("guardrail.input_length", len(text))
            try:
                await self._run_input_layers(text, record)
            except Exception as e:
                span.record_exception(e)
                await self._fail(record, e, start)
            else:
                await self._finalize(record, start)
            span.set_attribute("guardrail.decision", record.decision.value)

        return record

    async def evaluate_output(
        self,
        output: str,
        original_input: str,
        context: Mapping[str, Any] | None = None,
    ) -> EvaluationRecord:
        """Evaluate a generated response before delivery.

        Injection detection is skipped; it only applies to inputs.

        Args:
            output: The generated response.
            original_input: The prompt that produced the response.
            context: Optional evaluation context passed to every layer.

        Returns:
            EvaluationRecord with a terminal decision. Never raises.
        """
        start = time.perf_counter()
        record = EvaluationRecord(
            direction=EvaluationDirection.OUTPUT,
            content=self._retain(output),
            original_input=self._retain(original_input),
            context=dict(context or {}),
        )

        with tracer.start_as_current_span("guardrail.evaluate_output") as span:
            span.set_attribute("guardrail.input_length", len(output))
            try:
                await self._run_output_layers(output, original_input, record)
            except Exception as e:
                span.record_exception(e)
                await self._fail(record, e, start)
            else:
                await self._finalize(record, start)
            span.set_attribute("guardrail.decision", record.decision.value)

        return record

    @traced(span_name="guardrail.evaluate_batch")
    async def evaluate_batch(
        self, inputs: Sequence[str], context: Mapping[str, Any] | None = None
    ) -> BatchResult:
        """Evaluate many inputs concurrently.

        Args:
            inputs: User inputs to evaluate.
            context: Context shared by every item; each item also gets
                its `batch_index`.

        Returns:
            BatchResult with records in input order and a summary.
        """
        base = dict(context or {})
        outcomes = await asyncio.gather(
            *(
                self.evaluate_input(text, {**base, "batch_index": index})
                for index, text in enumerate(inputs)
            ),
            return_exceptions=True,
        )

        records: list[EvaluationRecord] = []
        for index, (text, outcome) in enumerate(zip(inputs, outcomes, strict=True)):
            if isinstance(outcome, EvaluationRecord):
                records.append(outcome)
            elif isinstance(outcome, Exception):
                record = EvaluationRecord(
                    direction=EvaluationDirection.INPUT,
                    content=self._retain(text),
                    context={**base, "batch_index": index},
                )
                await self._fail(record, outcome, time.perf_counter())
                records.append(record)
            else:
                raise outcome

        summary = BatchSummary.from_records(records)
        add_span_attributes({"guardrail.batch_size": summary.total})
        logger.info(
            "batch_evaluation_complete",
            total=summary.total,
            allowed=summary.allowed,
            blocked=summary.blocked,
            moderated=summary.moderated,
            errors=summary.errors,
            average_processing_time_ms=round(summary.average_processing_time_ms, 2),
        )
        return BatchResult(results=records, summary=summary)

    async def enforce_policy(
        self,
        policy_name: str,
        content: str,
        context: Mapping[str, Any] | None = None,
    ) -> EvaluationRecord:
        """Evaluate input under a named policy.

        Args:
            policy_name: Name of the policy to enforce.
            content: The user input to evaluate.
            context: Optional evaluation context.

        Returns:
            The evaluation record.

        Raises:
            PolicyNotFoundError: If the policy is unknown. Nothing is evaluated.
            PolicyViolationError: If the policy is strictly enforced and the
                decision is not ALLOW.
        """
        policy = await self._compliance.get_policy(policy_name)
        if policy is None:
            logger.error("policy_not_found", policy=policy_name)
            raise PolicyNotFoundError(policy_name)

        evaluation = await self.evaluate_input(
            content, {**(context or {}), "policy": policy_name}
        )

        if policy.strict_enforcement and evaluation.decision != GuardrailDecision.ALLOW:
            logger.warning(
                "policy_violation",
                policy=policy_name,
                decision=evaluation.decision.value,
                evaluation_id=evaluation.evaluation_id,
            )
            raise PolicyViolationError(policy_name, evaluation)

        return evaluation

    async def get_monitoring_metrics(self, time_range: str = "1h") -> dict[str, Any]:
        """Get audit metrics for the given time range."""
        return await self._audit_sink.get_metrics(time_range)

    async def generate_compliance_report(self, time_range: str = "24h") -> dict[str, Any]:
        """Get a compliance report for the given time range."""
        return await self._compliance.generate_report(time_range)

    async def close(self) -> None:
        """Close any open connections."""
        await self._injection_detector.close()

    async def _run_input_layers(self, text: str, record: EvaluationRecord) -> None:
        context = record.context

        with _layer("injection"):
            injection = await self._injection_detector.analyze(text, context)
        record.safety.injection = injection

        if injection.risk_level >= self._block_level:
            record.decision = GuardrailDecision.BLOCK
            record.confidence = injection.confidence / 100
            logger.warning(
                "guardrail_input_blocked",
                reason="prompt_injection",
                risk_level=injection.risk_level.value,
                evaluation_id=record.evaluation_id,
            )
            return

        with _layer("content_safety"):
            content = self._content_pipeline.evaluate(text, context)
        record.safety.content_safety = content

        if content.overall_score < self._moderation_threshold:
            record.decision = GuardrailDecision.MODERATE
            record.confidence = content.confidence

        with _layer("bias"):
            bias = await self._bias_detector.analyze(text, context)
        record.safety.bias = bias

        # Bias never overrides an earlier decision
        if (
            bias.bias_detected
            and self.strict_mode
            and record.decision == GuardrailDecision.PENDING
        ):
            record.decision = GuardrailDecision.REVIEW
            record.confidence = bias.confidence

        with _layer("compliance"):
            compliance = await self._compliance.validate(text, context)
        record.safety.compliance = compliance

        if not compliance.compliant:
            record.decision = GuardrailDecision.BLOCK
            record.confidence = COMPLIANCE_BLOCK_CONFIDENCE
            logger.warning(
                "guardrail_input_blocked",
                reason="compliance",
                violations=list(compliance.violations),
                evaluation_id=record.evaluation_id,
            )

        if record.decision == GuardrailDecision.PENDING:
            record.decision = GuardrailDecision.ALLOW
            record.confidence = min(
                injection.confidence / 100, content.confidence, bias.confidence
            )

    async def _run_output_layers(
        self, output: str, original_input: str, record: EvaluationRecord
    ) -> None:
        context = record.context

        with _layer("content_safety"):
            content = self._content_pipeline.evaluate(output, context)
        record.safety.content_safety = content

        with _layer("bias"):
            bias = await self._bias_detector.analyze(output, context)
        record.safety.bias = bias

        with _layer("compliance"):
            compliance = await self._compliance.validate_output(
                output, original_input, context
            )
        record.safety.compliance = compliance

        if content.overall_score < self._filter_threshold:
            record.decision = GuardrailDecision.FILTER
        elif not compliance.compliant:
            record.decision = GuardrailDecision.BLOCK
        elif bias.bias_detected and self.strict_mode:
            record.decision = GuardrailDecision.REVIEW
        else:
            record.decision = GuardrailDecision.ALLOW

        compliance_confidence = (
            compliance.confidence
            if compliance.confidence is not None
            else DEFAULT_OUTPUT_COMPLIANCE_CONFIDENCE
        )
        record.confidence = min(content.confidence, bias.confidence, compliance_confidence)

        if record.decision in (GuardrailDecision.FILTER, GuardrailDecision.BLOCK):
            logger.warning(
                "guardrail_output_blocked",
                reason=record.decision.value.lower(),
                evaluation_id=record.evaluation_id,
            )

    def _retain(self, text: str) -> str:
        return text if self.enable_audit else REDACTED

    async def _finalize(self, record: EvaluationRecord, start: float) -> None:
        record.processing_time_ms = (time.perf_counter() - start) * 1000

        if self.enable_audit:
            try:
                await self._audit_sink.log_evaluation(record)
            except Exception as e:
                logger.warning(
                    "audit_log_failed",
                    evaluation_id=record.evaluation_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )

        logger.debug(
            "guardrail_evaluation_complete",
            evaluation_id=record.evaluation_id,
            direction=record.direction.value,
            decision=record.decision.value,
            confidence=record.confidence,
            processing_time_ms=round(record.processing_time_ms, 2),
        )

    async def _fail(self, record: EvaluationRecord, error: Exception, start: float) -> None:
        if isinstance(error, OrchestrationError):
            failure = error
        else:
            failure = OrchestrationError(str(error) or type(error).__name__)
            failure.__cause__ = error

        record.decision = GuardrailDecision.ERROR
        record.confidence = 0.0
        record.error = failure
        record.processing_time_ms = (time.perf_counter() - start) * 1000

        logger.error(
            "guardrail_evaluation_failed",
            evaluation_id=record.evaluation_id,
            direction=record.direction.value,
            layer=failure.layer,
            error=failure.message,
        )

        try:
            await self._audit_sink.log_error(record)
        except Exception as e:
            logger.warning(
                "audit_log_failed",
                evaluation_id=record.evaluation_id,
                error=str(e),
                error_type=type(e).__name__,
            )
