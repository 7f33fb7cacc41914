"""Custom exceptions for guardrail evaluation."""


class GuardrailError(Exception):
    """Base exception for guardrail errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ScorerError(GuardrailError):
    """Raised when a content or injection scorer fails."""

    def __init__(self, message: str, *, scorer: str = "unknown") -> None:
        self.scorer = scorer
        super().__init__(message)


class OrchestrationError(GuardrailError):
    """Raised when a guardrail layer fails during an evaluation."""

    def __init__(self, message: str, *, layer: str = "orchestrator") -> None:
        self.layer = layer
        super().__init__(message)


class PolicyNotFoundError(GuardrailError):
    """Raised when a policy name cannot be resolved."""

    def __init__(self, policy_name: str) -> None:
        self.policy_name = policy_name
        super().__init__(f"Policy not found: {policy_name}")


class PolicyViolationError(GuardrailError):
    """Raised when content violates a strictly enforced policy.

    Attributes:
        policy_name: Name of the violated policy.
        evaluation: The full evaluation record that triggered the violation.
    """

    def __init__(self, policy_name: str, evaluation: object) -> None:
        self.policy_name = policy_name
        self.evaluation = evaluation
        super().__init__(f"Content violates policy: {policy_name}")


class MLScorerError(GuardrailError):
    """Raised when the ML scorer is misconfigured."""

    pass
