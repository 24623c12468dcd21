"""Heuristic classification of work items from their text.

The analyzer is a pure function of its inputs: the same title, description
and trigger text always produce the same :class:`TaskAnalysis`. All numeric
weights live in :class:`ComplexityWeights` and the vocabulary tables below so
they can be tuned without touching the scoring code.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from .task import (
    AnalysisContext,
    ComplexityTier,
    PriorityTier,
    ScopeEstimate,
    TaskAnalysis,
    TaskType,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ComplexityWeights:
    """Tunable policy table for the complexity score."""
    base: float = 5.0
    high_term: float = 1.5
    medium_term: float = 0.5
    low_term: float = -0.5
    low_floor: float = -1.5  # total deduction from low-complexity terms is capped here
    long_text: float = 2.0
    long_text_chars: int = 1000
    medium_text: float = 1.0
    medium_text_chars: int = 500
    short_text: float = -1.0
    short_text_chars: int = 100
    structure: float = 1.5
    multi_step: float = 2.0
    multi_step_min_terms: int = 2
    complex_at: int = 7
    medium_at: int = 4


HIGH_COMPLEXITY_TERMS = (
    "refactor", "redesign", "architecture", "migrate", "migration", "rewrite",
    "complex", "multiple", "system", "integrate", "integration", "performance",
    "security", "scalability", "distributed", "concurrency",
)

MEDIUM_COMPLEXITY_TERMS = (
    "feature", "implement", "add", "create", "build", "update", "modify",
    "enhance", "improve", "extend",
)

LOW_COMPLEXITY_TERMS = (
    "fix", "bug", "typo", "small", "simple", "quick", "minor", "tweak", "trivial",
)

STRUCTURE_TERMS = ("files", "modules", "components", "services")

MULTI_STEP_TERMS = ("steps", "phases", "stages", "first", "then")

TASK_TYPE_TERMS: Dict[TaskType, Tuple[str, ...]] = {
    TaskType.FEATURE: ("feature", "add", "create", "implement", "build", "new", "support"),
    TaskType.BUG: ("bug", "fix", "error", "issue", "broken", "crash", "fail", "regression"),
    TaskType.REFACTOR: ("refactor", "clean", "reorganize", "restructure", "simplify", "extract"),
    TaskType.TEST: ("test", "testing", "coverage", "spec", "unit", "e2e"),
    TaskType.DOCS: ("docs", "documentation", "document", "readme", "guide", "tutorial"),
}

# (terms, weight per matched term)
PRIORITY_TERMS: Tuple[Tuple[Tuple[str, ...], int], ...] = (
    (("low", "minor", "nice to have", "future", "someday", "backlog"), -2),
    (("high", "important", "urgent", "asap", "priority"), 1),
    (("critical", "blocker", "severe", "emergency", "p0", "outage"), 3),
    (("production", "prod"), 2),
    (("customer", "user"), 1),
)

HEDGING_TERMS = (
    "maybe", "perhaps", "not sure", "unsure", "unclear", "possibly",
    "might", "tbd", "investigate whether", "no idea", "somehow",
)

STOP_WORDS = frozenset("""
    a about above after again against all also am an and any are as at be
    because been before being below between both but by can could did do does
    doing down during each few for from further had has have having he her here
    hers him his how i if in into is it its itself just let me more most my no
    nor not now of off on once only or other our ours out over own same she
    should so some such than that the their theirs them then there these they
    this those through to too under until up very was we were what when where
    which while who whom why will with would you your yours
""".split())

TIME_ESTIMATES = {
    ComplexityTier.SIMPLE: "30 min - 1 hour",
    ComplexityTier.MEDIUM: "2-4 hours",
    ComplexityTier.COMPLEX: "1-2 days",
}

# Applied when the work is not complex
TASK_TYPE_TIME_ESTIMATES = {
    TaskType.BUG: "1-2 hours",
    TaskType.TEST: "2-3 hours",
    TaskType.DOCS: "1-2 hours",
}

MAX_KEYWORDS = 10
MAX_ESTIMATED_SUBTASKS = 8

_FILE_PATTERN = re.compile(
    r"\b[\w./-]*\w\.(?:py|pyi|ts|tsx|js|jsx|java|go|rs|rb|kt|swift|c|cpp|h|cs|php|sql|ya?ml|json|toml|md)\b"
)
_FILE_COUNT_PATTERN = re.compile(r"\b(\d+)\s+(?:files|modules)\b")
_LINE_COUNT_PATTERN = re.compile(r"\b(\d+)\s+(?:lines|loc)\b")
_PACKAGE_PATTERN = re.compile(r"@[\w-]+/[\w.-]+")
_REPO_PATTERN = re.compile(r"github\.com/([\w.-]+/[\w.-]+?)(?:\.git)?(?:/|\s|$)")
_ISSUE_REF_PATTERN = re.compile(r"(?<![\w&])#(\d+)\b")
_NUMBERED_LIST_PATTERN = re.compile(r"^\s*\d+[.)]\s+\S", re.MULTILINE)
_WORD_PATTERN = re.compile(r"[a-z][a-z0-9_-]+")


_PATTERN_CACHE: Dict[Tuple[str, bool], re.Pattern] = {}


def _matched_terms(text: str, terms: Iterable[str], whole_word: bool = False) -> List[str]:
    """Return the terms present in ``text``, each counted once.

    By default a term matches at a word start, so "test" also matches
    "tests" and "testing". ``whole_word`` requires a word end as well.
    """
    matched = []
    for term in terms:
        key = (term, whole_word)
        pattern = _PATTERN_CACHE.get(key)
        if pattern is None:
            suffix = r"(?![a-z0-9])" if whole_word else ""
            pattern = _PATTERN_CACHE[key] = re.compile(r"(?<![a-z0-9])" + re.escape(term) + suffix)
        if pattern.search(text):
            matched.append(term)
    return matched


class TaskAnalyzer:
    """Scores work item text into a :class:`TaskAnalysis`.

    Never raises on malformed or empty input; an empty text classifies as a
    medium-complexity mixed task.
    """

    def __init__(self, weights: Optional[ComplexityWeights] = None):
        self.weights = weights or ComplexityWeights()

    def classify(
        self,
        title: str,
        description: Optional[str] = None,
        trigger_text: Optional[str] = None,
        priority_hint: Optional[PriorityTier] = None,
        work_item_key: Optional[str] = None,
    ) -> TaskAnalysis:
        raw = "\n".join(part for part in (title, description, trigger_text) if part)
        text = raw.lower()

        score, reasons = self._score_complexity(text)
        tier = self._tier_for(score)
        task_type = self._detect_task_type(text)
        priority = self._detect_priority(text)
        if priority_hint is not None and priority_hint.is_more_urgent_than(priority):
            reasons.append(f"priority raised from {priority.value} to {priority_hint.value} by tracker")
            priority = priority_hint

        ambiguity = frozenset(_matched_terms(text, HEDGING_TERMS, whole_word=True))
        if ambiguity:
            reasons.append(f"hedging language: {', '.join(sorted(ambiguity))}")

        analysis = TaskAnalysis(
            title=title or "",
            work_item_key=work_item_key,
            task_type=task_type,
            complexity_tier=tier,
            priority_tier=priority,
            complexity_score=score,
            keywords=frozenset(self.extract_keywords(text)),
            scope=self._estimate_scope(text),
            estimated_subtask_count=self._estimate_subtasks(score, raw),
            estimated_time=self._estimate_time(tier, task_type),
            ambiguity_signals=ambiguity,
            context=self._gather_context(raw),
            reasoning=". ".join(
                [f"Complexity score {score}/10 ({tier.value})", f"type {task_type.value}", f"priority {priority.value}"]
                + reasons
            ),
        )
        short_title = (title or "")[:60]
        logger.debug(
            f"Classified '{short_title}' as {task_type.value}/{tier.value} "
            f"(score {score}, priority {priority.value})"
        )
        return analysis

    def _score_complexity(self, text: str) -> Tuple[int, List[str]]:
        w = self.weights
        reasons: List[str] = []
        score = w.base

        high = _matched_terms(text, HIGH_COMPLEXITY_TERMS)
        if high:
            score += w.high_term * len(high)
            reasons.append(f"{len(high)} high-complexity indicator(s)")

        medium = _matched_terms(text, MEDIUM_COMPLEXITY_TERMS)
        score += w.medium_term * len(medium)

        low = _matched_terms(text, LOW_COMPLEXITY_TERMS)
        if low:
            score += max(w.low_term * len(low), w.low_floor)
            reasons.append(f"{len(low)} low-complexity indicator(s)")

        length = len(text)
        if length > w.long_text_chars:
            score += w.long_text
            reasons.append("long description")
        elif length > w.medium_text_chars:
            score += w.medium_text
        elif length < w.short_text_chars:
            score += w.short_text

        if _matched_terms(text, STRUCTURE_TERMS):
            score += w.structure
            reasons.append("spans multiple files or components")

        if len(_matched_terms(text, MULTI_STEP_TERMS)) >= w.multi_step_min_terms:
            score += w.multi_step
            reasons.append("multi-step work")

        # Half-up rounding; the score floor keeps it positive
        rounded = int(score + 0.5)
        return max(1, min(10, rounded)), reasons

    def _tier_for(self, score: int) -> ComplexityTier:
        if score >= self.weights.complex_at:
            return ComplexityTier.COMPLEX
        if score >= self.weights.medium_at:
            return ComplexityTier.MEDIUM
        return ComplexityTier.SIMPLE

    def _detect_task_type(self, text: str) -> TaskType:
        counts = {
            task_type: len(_matched_terms(text, terms))
            for task_type, terms in TASK_TYPE_TERMS.items()
        }
        best = max(counts.values())
        if best == 0:
            return TaskType.MIXED
        leaders = [t for t, c in counts.items() if c == best]
        return leaders[0] if len(leaders) == 1 else TaskType.MIXED

    def _detect_priority(self, text: str) -> PriorityTier:
        score = sum(
            len(_matched_terms(text, terms, whole_word=True)) * weight
            for terms, weight in PRIORITY_TERMS
        )
        if score >= 4:
            return PriorityTier.CRITICAL
        if score >= 2:
            return PriorityTier.HIGH
        if score <= -2:
            return PriorityTier.LOW
        return PriorityTier.MEDIUM

    @staticmethod
    def extract_keywords(text: str, limit: int = MAX_KEYWORDS) -> List[str]:
        """Most frequent non-stop-words, first occurrence breaking ties."""
        words = [
            word.strip("-_")
            for word in _WORD_PATTERN.findall(text.lower())
        ]
        counts = Counter(w for w in words if len(w) > 2 and w not in STOP_WORDS)
        return [word for word, _ in counts.most_common(limit)]

    @staticmethod
    def _estimate_scope(text: str) -> ScopeEstimate:
        files = list(dict.fromkeys(_FILE_PATTERN.findall(text)))
        stated_files = [int(n) for n in _FILE_COUNT_PATTERN.findall(text)]
        stated_lines = [int(n) for n in _LINE_COUNT_PATTERN.findall(text)]

        files_affected = max([len(files)] + stated_files) if (files or stated_files) else None
        return ScopeEstimate(
            files_affected=files_affected,
            lines_of_code=max(stated_lines) if stated_lines else None,
            files=files,
            dependencies=list(dict.fromkeys(_PACKAGE_PATTERN.findall(text))),
        )

    def _estimate_subtasks(self, score: int, raw_text: str) -> int:
        if score >= 9:
            estimate = 5
        elif score >= 7:
            estimate = 3
        elif score >= 5:
            estimate = 2
        else:
            estimate = 1

        listed = len(_NUMBERED_LIST_PATTERN.findall(raw_text))
        if listed > estimate:
            estimate = min(listed, MAX_ESTIMATED_SUBTASKS)
        return estimate

    @staticmethod
    def _estimate_time(tier: ComplexityTier, task_type: TaskType) -> str:
        if tier != ComplexityTier.COMPLEX and task_type in TASK_TYPE_TIME_ESTIMATES:
            return TASK_TYPE_TIME_ESTIMATES[task_type]
        return TIME_ESTIMATES[tier]

    @staticmethod
    def _gather_context(raw_text: str) -> AnalysisContext:
        repo = _REPO_PATTERN.search(raw_text)
        return AnalysisContext(
            repository=repo.group(1) if repo else None,
            related_issues=list(dict.fromkeys(f"#{n}" for n in _ISSUE_REF_PATTERN.findall(raw_text))),
            file_paths=list(dict.fromkeys(_FILE_PATTERN.findall(raw_text))),
        )
