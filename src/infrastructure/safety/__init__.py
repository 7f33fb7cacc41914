"""Content safety infrastructure: injection detection and content scoring."""

from src.infrastructure.safety.behavioral import BehavioralAnalyzer
from src.infrastructure.safety.content import (
    ContentAxisScorers,
    ContentSafetyAggregator,
    ContentSafetyPipeline,
    ContentSafetyThresholds,
)
from src.infrastructure.safety.detector import (
    InjectionRiskFuser,
    PromptInjectionDetector,
)
from src.infrastructure.safety.exceptions import (
    GuardrailError,
    MLScorerError,
    OrchestrationError,
    PolicyNotFoundError,
    PolicyViolationError,
    ScorerError,
)
from src.infrastructure.safety.ml import HTTPMLScorer, MLScorer, NoOpMLScorer
from src.infrastructure.safety.patterns import PatternAnalyzer, PatternTable
from src.infrastructure.safety.schemas import (
    AxisScores,
    ContentSafetyResult,
    ContentType,
    DetectedPattern,
    InjectionAnalysisResult,
    LanguageScore,
    PatternKind,
    PersonalDataDetection,
    PersonalDataType,
    RiskLevel,
    SafetyFlag,
    Severity,
    SignalScore,
)
from src.infrastructure.safety.statistical import (
    StatisticalAnalyzer,
    TextStatistics,
    shannon_entropy,
)

__all__ = [
    "AxisScores",
    "BehavioralAnalyzer",
    "ContentAxisScorers",
    "ContentSafetyAggregator",
    "ContentSafetyPipeline",
    "ContentSafetyResult",
    "ContentSafetyThresholds",
    "ContentType",
    "DetectedPattern",
    "GuardrailError",
    "HTTPMLScorer",
    "InjectionAnalysisResult",
    "InjectionRiskFuser",
    "LanguageScore",
    "MLScorer",
    "MLScorerError",
    "NoOpMLScorer",
    "OrchestrationError",
    "PatternAnalyzer",
    "PatternKind",
    "PatternTable",
    "PersonalDataDetection",
    "PersonalDataType",
    "PolicyNotFoundError",
    "PolicyViolationError",
    "PromptInjectionDetector",
    "RiskLevel",
    "SafetyFlag",
    "ScorerError",
    "Severity",
    "SignalScore",
    "StatisticalAnalyzer",
    "TextStatistics",
    "shannon_entropy",
]
