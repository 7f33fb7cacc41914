"""Pluggable ML scorers for prompt injection analysis."""

from datetime import timedelta
from typing import Any, Protocol

import httpx
import structlog
from aiobreaker import CircuitBreaker, CircuitBreakerError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.infrastructure.observability import get_tracer
from src.infrastructure.safety.exceptions import MLScorerError
from src.infrastructure.safety.schemas import (
    DetectedPattern,
    PatternKind,
    Severity,
    SignalScore,
)

logger = structlog.get_logger()
tracer = get_tracer(__name__)


class MLScorer(Protocol):
    """Protocol for ML-based injection scorers."""

    async def score(self, text: str) -> SignalScore:
        """Score text for injection likelihood.

        Args:
            text: The text to score.

        Returns:
            SignalScore with a 0-1 score and any model-reported patterns.
        """
        ...


class NoOpMLScorer:
    """Scorer used when no ML model is configured. Always scores 0."""

    async def score(self, text: str) -> SignalScore:  # noqa: ARG002
        """Always returns an empty score."""
        return SignalScore.empty()

    async def close(self) -> None:
        """No-op close."""
        pass


class HTTPMLScorer:
    """Scorer backed by a remote classification endpoint.

    The endpoint receives `{"input": text}` and answers with
    `{"score": float, "labels": [{"name": str, "severity": str}]}`.

    Includes resilience patterns:
    - Retries with exponential backoff for connection failures and timeouts
    - Circuit breaker to fail fast after repeated failures

    Failures fail open: the scorer contributes a zero score and the other
    analyzers still decide.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        api_key: str | None = None,
        timeout_seconds: float = 5.0,
        circuit_breaker_fail_max: int = 5,
        circuit_breaker_timeout: float = 60.0,
    ) -> None:
        """Initialize the scorer.

        Args:
            endpoint: URL of the classification endpoint.
            api_key: Optional bearer token.
            timeout_seconds: Request timeout in seconds.
            circuit_breaker_fail_max: Open circuit after this many failures.
            circuit_breaker_timeout: Time in seconds before attempting recovery.

        Raises:
            MLScorerError: If the endpoint is empty.
        """
        if not endpoint:
            raise MLScorerError("ML scorer endpoint is required")

        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self._endpoint = endpoint
        self._timeout = timeout_seconds
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            headers=headers,
        )
        # Circuit breaker: fail fast after repeated failures
        self._breaker = CircuitBreaker(
            fail_max=circuit_breaker_fail_max,
            timeout_duration=timedelta(seconds=circuit_breaker_timeout),
        )

    async def score(self, text: str) -> SignalScore:
        """Score text using the remote model.

        Args:
            text: The text to score.

        Returns:
            SignalScore from the model, or an empty score on any failure.
        """
        with tracer.start_as_current_span("ml_scorer.score") as span:
            span.set_attribute("ml_scorer.input_length", len(text))
            try:
                data = await self._score_with_resilience(text)
                result = self._parse(data)
                span.set_attribute("ml_scorer.score", result.score)
                return result

            except CircuitBreakerError as e:
                span.record_exception(e)
                logger.warning("ml_scorer_circuit_open", endpoint=self._endpoint)
                return SignalScore.empty()

            except httpx.TimeoutException as e:
                span.record_exception(e)
                logger.error(
                    "ml_scorer_timeout",
                    text_length=len(text),
                    timeout_seconds=self._timeout,
                )
                return SignalScore.empty()

            except httpx.HTTPStatusError as e:
                span.record_exception(e)
                logger.error(
                    "ml_scorer_api_error",
                    status_code=e.response.status_code,
                    text_length=len(text),
                )
                return SignalScore.empty()

            except Exception as e:
                span.record_exception(e)
                logger.error(
                    "ml_scorer_unexpected_error",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return SignalScore.empty()

    @retry(
        retry=retry_if_exception_type((httpx.ConnectError, httpx.TimeoutException)),
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=1, max=5),
        reraise=True,
    )
    async def _score_with_resilience(self, text: str) -> dict[str, Any]:
        """Internal method with retry and circuit breaker logic."""
        return await self._breaker.call_async(  # type: ignore[no-any-return]
            self._do_score, text
        )

    async def _do_score(self, text: str) -> dict[str, Any]:
        """Execute the actual API call."""
        response = await self._client.post(self._endpoint, json={"input": text})
        response.raise_for_status()
        data: dict[str, Any] = response.json()
        return data

    @staticmethod
    def _parse(data: dict[str, Any]) -> SignalScore:
        """Convert an endpoint payload into a SignalScore."""
        score = min(max(float(data.get("score", 0.0)), 0.0), 1.0)
        patterns = []
        for label in data.get("labels", []):
            try:
                severity = Severity(str(label.get("severity", "medium")).lower())
            except ValueError:
                severity = Severity.MEDIUM
            patterns.append(
                DetectedPattern(
                    kind=PatternKind.MODEL,
                    name=str(label.get("name", "ml_model")),
                    severity=severity,
                    value=label.get("score"),
                )
            )
        return SignalScore(score=score, patterns=tuple(patterns))

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
