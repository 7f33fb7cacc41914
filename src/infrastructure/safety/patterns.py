"""Pattern-based prompt injection analysis."""

import re
import threading
from collections.abc import Iterable, Mapping
from types import MappingProxyType

import structlog

from src.infrastructure.safety.schemas import (
    DetectedPattern,
    PatternKind,
    Severity,
    SignalScore,
)

logger = structlog.get_logger()

# Patterns for common prompt injection attempts, grouped by category.
# These patterns are case-insensitive and match common attack vectors.
INJECTION_PATTERNS: dict[str, list[str]] = {
    # Instruction override attempts
    "direct": [
        r"ignore\s+(?:all\s+|any\s+)?(?:previous|prior|above|earlier)?\s*(?:instructions?|prompts?|rules?|directions?)",
        r"(?:previous|prior|above|earlier)\s+(?:instructions?|prompts?|rules?)",
        r"forget\s+(?:everything|all|previous)\b",
        r"disregard\s+(?:all\s+)?(?:previous|all|above|prior)\s+(?:instructions?|prompts?|rules?)",
        r"override\s+(?:system|previous)\s+(?:instructions?|prompts?)",
    ],
    # Role manipulation
    "role_manipulation": [
        r"you\s+are\s+now\s+(?:a|an)\s+",
        r"act\s+as\s+(?:if\s+you\s+are\s+)?(?:a|an)?\s*(?:different|new|unrestricted)",
        r"\b(?:a|an)\s+(?:different|new|unrestricted|unfiltered)\s+(?:assistant|ai|model|bot|persona|character)",
        r"pretend\s+(?:to\s+be|you\s+are)",
        r"imagine\s+you\s+are\s+(?:a|an|now)\b",
    ],
    # System message manipulation
    "system_manipulation": [
        r"system\s*:\s*(?:ignore|forget|disregard)",
        r"\[system\]\s*(?:ignore|forget|override)",
        r"assistant\s*:\s*(?:i\s+will\s+ignore|forget)",
    ],
    # Context switching
    "context_switching": [
        r"new\s+(?:conversation|session|context)",
        r"start\s+(?:over|fresh|new)",
        r"reset\s+(?:conversation|context|memory)",
    ],
    # Encoded payloads
    "encoding": [
        r"&#x[0-9a-f]+;",  # HTML entities
        r"%[0-9a-f]{2}",  # URL encoding
        r"\\u[0-9a-f]{4}",  # Unicode escapes
        r"base64\s*:\s*[a-z0-9+/]+=*",
    ],
    # Template injection
    "template": [
        r"\{\{\s*[^}]+\s*\}\}",  # Jinja/handlebars
        r"\$\{[^}]+\}",  # JavaScript template strings
        r"%\([^)]+\)s",  # Python string formatting
    ],
}

CATEGORY_SEVERITY: dict[str, Severity] = {
    "direct": Severity.CRITICAL,
    "role_manipulation": Severity.HIGH,
    "system_manipulation": Severity.CRITICAL,
    "context_switching": Severity.MEDIUM,
    "encoding": Severity.HIGH,
    "template": Severity.HIGH,
}

PatternSnapshot = Mapping[str, tuple[re.Pattern[str], ...]]


def _compile(pattern: str, flags: int = re.IGNORECASE) -> re.Pattern[str]:
    return re.compile(pattern, flags)


class PatternTable:
    """Category to regex table with copy-on-write registration.

    Readers take the current snapshot once per analysis pass. Writers build a
    new snapshot under a lock and swap the reference, so a concurrent reader
    sees either the old table or the new one, never a partial update.
    """

    def __init__(self, patterns: Mapping[str, Iterable[str]] | None = None) -> None:
        """Initialize the table.

        Args:
            patterns: Mapping of category to regex sources. Defaults to
                INJECTION_PATTERNS.
        """
        source = INJECTION_PATTERNS if patterns is None else patterns
        self._lock = threading.Lock()
        self._snapshot: PatternSnapshot = MappingProxyType(
            {
                category: tuple(_compile(p) for p in regexes)
                for category, regexes in source.items()
            }
        )

    @property
    def snapshot(self) -> PatternSnapshot:
        """The current immutable table."""
        return self._snapshot

    def register(self, entries: Iterable[tuple[str, re.Pattern[str]]]) -> None:
        """Append compiled patterns to their categories.

        Args:
            entries: (category, compiled pattern) pairs. Unknown categories
                are created.
        """
        with self._lock:
            merged = {cat: list(regexes) for cat, regexes in self._snapshot.items()}
            for category, pattern in entries:
                merged.setdefault(category, []).append(pattern)
            self._snapshot = MappingProxyType(
                {cat: tuple(regexes) for cat, regexes in merged.items()}
            )

    @property
    def total_patterns(self) -> int:
        """Number of patterns across all categories."""
        return sum(len(regexes) for regexes in self._snapshot.values())


class PatternAnalyzer:
    """Matches text against categorized injection regex families."""

    def __init__(self, table: PatternTable | None = None) -> None:
        self._table = table or PatternTable()

    @property
    def table(self) -> PatternTable:
        return self._table

    def analyze(self, text: str) -> SignalScore:
        """Match text against every pattern in every category.

        Args:
            text: The text to check.

        Returns:
            SignalScore where each match adds 0.2, capped at 1.0.
        """
        snapshot = self._table.snapshot
        patterns: list[DetectedPattern] = []

        for category, regexes in snapshot.items():
            severity = CATEGORY_SEVERITY.get(category, Severity.MEDIUM)
            for regex in regexes:
                match = regex.search(text)
                if match:
                    patterns.append(
                        DetectedPattern(
                            kind=PatternKind.PATTERN,
                            name=category,
                            severity=severity,
                            matched_text=match.group(0),
                            pattern=regex.pattern,
                        )
                    )

        return SignalScore(score=min(len(patterns) * 0.2, 1.0), patterns=tuple(patterns))

    def register(self, category: str, pattern: str, *, flags: int = re.IGNORECASE) -> None:
        """Register a single pattern under a category.

        Raises:
            re.error: If the pattern does not compile.
        """
        self.register_many([(category, pattern, flags)])

    def register_many(self, entries: Iterable[tuple[str, str, int]]) -> None:
        """Compile and register several patterns in one atomic update.

        Every pattern is compiled before the table changes, so an invalid
        regex leaves the table untouched.

        Raises:
            re.error: If any pattern does not compile.
        """
        compiled = [(category, _compile(p, flags)) for category, p, flags in entries]
        if not compiled:
            return
        self._table.register(compiled)

        for category in dict.fromkeys(cat for cat, _ in compiled):
            logger.info(
                "injection_patterns_registered",
                category=category,
                count=sum(1 for cat, _ in compiled if cat == category),
            )
