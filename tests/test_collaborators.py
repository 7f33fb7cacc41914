"""Tests for the default guardrail collaborators."""

from datetime import UTC, datetime, timedelta

import pytest

from src.modules.guardrails import (
    EvaluationDirection,
    EvaluationRecord,
    GuardrailDecision,
    InMemoryAuditSink,
    NoOpBiasDetector,
    Policy,
    PolicyRegistry,
    parse_time_range,
)


def _record(
    decision: GuardrailDecision,
    *,
    confidence: float = 0.5,
    processing_time_ms: float = 10.0,
    age: timedelta = timedelta(0),
) -> EvaluationRecord:
    return EvaluationRecord(
        direction=EvaluationDirection.INPUT,
        content="text",
        decision=decision,
        confidence=confidence,
        processing_time_ms=processing_time_ms,
        timestamp=datetime.now(UTC) - age,
    )


class TestParseTimeRange:
    """Tests for time range parsing."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("30s", timedelta(seconds=30)),
            ("15m", timedelta(minutes=15)),
            ("1h", timedelta(hours=1)),
            ("7d", timedelta(days=7)),
        ],
    )
    def test_valid_ranges(self, value: str, expected: timedelta) -> None:
        """Supported units are seconds, minutes, hours and days."""
        assert parse_time_range(value) == expected

    @pytest.mark.parametrize("value", ["", "h", "1w", "-1h", "1.5h"])
    def test_invalid_ranges(self, value: str) -> None:
        """Malformed ranges are rejected."""
        with pytest.raises(ValueError, match="Invalid time range"):
            parse_time_range(value)


class TestNoOpBiasDetector:
    """Tests for NoOpBiasDetector."""

    @pytest.mark.asyncio
    async def test_never_detects_bias(self) -> None:
        """Always reports no bias with full confidence."""
        result = await NoOpBiasDetector().analyze("anything", {})
        assert result.bias_detected is False
        assert result.confidence == 1.0


class TestPolicyRegistry:
    """Tests for the policy-backed compliance validator."""

    @pytest.fixture
    def registry(self) -> PolicyRegistry:
        """Create a registry with two policies."""
        return PolicyRegistry(
            [
                Policy("finance", blocked_terms=("Insider Tip",)),
                Policy("medical", blocked_terms=("prescription",)),
            ],
            compliance_level="enterprise",
        )

    @pytest.mark.asyncio
    async def test_blocked_terms_are_case_insensitive(
        self, registry: PolicyRegistry
    ) -> None:
        """Blocked terms match regardless of case."""
        result = await registry.validate("got an INSIDER TIP for you", {})
        assert result.compliant is False
        assert result.violations == ("finance",)
        assert result.confidence == 0.9

    @pytest.mark.asyncio
    async def test_compliant_text(self, registry: PolicyRegistry) -> None:
        """Text without blocked terms is compliant."""
        result = await registry.validate("quarterly results are out", {})
        assert result.compliant is True
        assert result.violations == ()

    @pytest.mark.asyncio
    async def test_named_policy_scopes_check(self, registry: PolicyRegistry) -> None:
        """A policy named in the context is the only one applied."""
        result = await registry.validate("prescription refill", {"policy": "finance"})
        assert result.compliant is True

    @pytest.mark.asyncio
    async def test_validate_output_checks_output(
        self, registry: PolicyRegistry
    ) -> None:
        """Output validation looks at the response, not the prompt."""
        result = await registry.validate_output(
            "take this prescription", "can you help?", {}
        )
        assert result.violations == ("medical",)

    @pytest.mark.asyncio
    async def test_get_policy(self, registry: PolicyRegistry) -> None:
        """Policies are looked up by name."""
        policy = await registry.get_policy("finance")
        assert policy is not None
        assert policy.name == "finance"
        assert await registry.get_policy("unknown") is None

    @pytest.mark.asyncio
    async def test_register_replaces_policy(self, registry: PolicyRegistry) -> None:
        """Registering a policy with an existing name replaces it."""
        registry.register(Policy("finance", strict_enforcement=True))
        policy = await registry.get_policy("finance")
        assert policy is not None
        assert policy.strict_enforcement is True
        assert policy.blocked_terms == ()

    @pytest.mark.asyncio
    async def test_report_counts_validations(self, registry: PolicyRegistry) -> None:
        """Reports summarize validations and violations per policy."""
        await registry.validate("insider tip", {})
        await registry.validate("prescription and insider tip", {})
        await registry.validate("fine", {})

        report = await registry.generate_report("24h")

        assert report == {
            "time_range": "24h",
            "compliance_level": "enterprise",
            "policies": ["finance", "medical"],
            "validations": 3,
            "violations": 3,
            "violations_by_policy": {"finance": 2, "medical": 1},
        }


class TestInMemoryAuditSink:
    """Tests for the in-memory audit sink."""

    @pytest.mark.asyncio
    async def test_records_are_retained_in_order(self) -> None:
        """Evaluations and errors are kept oldest first."""
        sink = InMemoryAuditSink()
        allowed = _record(GuardrailDecision.ALLOW)
        failed = _record(GuardrailDecision.ERROR)

        await sink.log_evaluation(allowed)
        await sink.log_error(failed)

        assert sink.records == [allowed, failed]

    @pytest.mark.asyncio
    async def test_oldest_records_dropped(self) -> None:
        """Retention is bounded by max_records."""
        sink = InMemoryAuditSink(max_records=2)
        records = [_record(GuardrailDecision.ALLOW) for _ in range(3)]
        for record in records:
            await sink.log_evaluation(record)

        assert sink.records == records[1:]

    @pytest.mark.asyncio
    async def test_metrics_within_time_range(self) -> None:
        """Only records inside the window are counted."""
        sink = InMemoryAuditSink()
        await sink.log_evaluation(
            _record(GuardrailDecision.ALLOW, confidence=0.8, processing_time_ms=10.0)
        )
        await sink.log_evaluation(
            _record(GuardrailDecision.BLOCK, confidence=0.4, processing_time_ms=30.0)
        )
        await sink.log_error(_record(GuardrailDecision.ERROR, confidence=0.0))
        await sink.log_evaluation(
            _record(GuardrailDecision.ALLOW, age=timedelta(hours=2))
        )

        metrics = await sink.get_metrics("1h")

        assert metrics["total"] == 3
        assert metrics["decisions"]["ALLOW"] == 1
        assert metrics["decisions"]["BLOCK"] == 1
        assert metrics["decisions"]["MODERATE"] == 0
        assert metrics["errors"] == 1
        assert metrics["average_confidence"] == pytest.approx(0.4)
        assert metrics["average_processing_time_ms"] == pytest.approx(50.0 / 3)

    @pytest.mark.asyncio
    async def test_metrics_of_empty_sink(self) -> None:
        """An empty sink reports zeros."""
        metrics = await InMemoryAuditSink().get_metrics("24h")
        assert metrics["total"] == 0
        assert metrics["average_confidence"] == 0.0
        assert metrics["average_processing_time_ms"] == 0.0
