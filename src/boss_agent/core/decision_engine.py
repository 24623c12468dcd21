"""Turns a TaskAnalysis into a delegation Decision.

Policy is expressed as two ordered rule lists evaluated first-match: one
picks the execution strategy, the other the delegate target. Both are plain
data so tests can exercise each rule in isolation.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from ..utils.validators import slugify, validate_branch_name
from .config import DecisionConfig
from .task import (
    ComplexityTier,
    Decision,
    DelegateTarget,
    ExecutionOptions,
    PriorityTier,
    Strategy,
    TaskAnalysis,
    TaskType,
)

logger = logging.getLogger(__name__)

COST_PER_POINT = 20

TASK_TYPE_COST_MULTIPLIERS = {
    TaskType.BUG: 0.8,
    TaskType.TEST: 0.7,
    TaskType.DOCS: 0.5,
    TaskType.FEATURE: 1.2,
    TaskType.REFACTOR: 1.5,
    TaskType.MIXED: 1.0,
}

CRITICAL_COST_MULTIPLIER = 1.5

# Medium tasks touching more files than this run their pieces in parallel
PARALLEL_FILES_THRESHOLD = 3

Predicate = Callable[[TaskAnalysis, DecisionConfig], bool]


@dataclass(frozen=True)
class StrategyRule:
    name: str
    applies: Predicate
    strategy: Strategy
    reason: str


@dataclass(frozen=True)
class TargetRule:
    name: str
    applies: Predicate
    manual: bool
    force_delegate: bool
    reason: str


def _is_critical(analysis: TaskAnalysis, _config: DecisionConfig) -> bool:
    return analysis.priority_tier == PriorityTier.CRITICAL


def _is_simple(analysis: TaskAnalysis, _config: DecisionConfig) -> bool:
    return analysis.complexity_tier == ComplexityTier.SIMPLE


def _is_complex(analysis: TaskAnalysis, _config: DecisionConfig) -> bool:
    return analysis.complexity_tier == ComplexityTier.COMPLEX


def _exceeds_scope(analysis: TaskAnalysis, config: DecisionConfig) -> bool:
    scope = analysis.scope
    too_many_files = (scope.files_affected or 0) > config.split_files_threshold
    too_many_lines = (scope.lines_of_code or 0) > config.split_lines_threshold
    return too_many_files or too_many_lines


def _is_complex_large(analysis: TaskAnalysis, config: DecisionConfig) -> bool:
    return _is_complex(analysis, config) and _exceeds_scope(analysis, config)


def _is_complex_feature(analysis: TaskAnalysis, config: DecisionConfig) -> bool:
    return _is_complex(analysis, config) and analysis.task_type == TaskType.FEATURE


def _is_medium_multi_file(analysis: TaskAnalysis, _config: DecisionConfig) -> bool:
    return (
        analysis.complexity_tier == ComplexityTier.MEDIUM
        and (analysis.scope.files_affected or 0) > PARALLEL_FILES_THRESHOLD
    )


def _is_ambiguous(analysis: TaskAnalysis, config: DecisionConfig) -> bool:
    return len(analysis.ambiguity_signals) >= config.ambiguity_threshold


def _always(_analysis: TaskAnalysis, _config: DecisionConfig) -> bool:
    return True


STRATEGY_RULES: List[StrategyRule] = [
    StrategyRule("critical_priority", _is_critical, Strategy.DIRECT,
                 "Critical priority: delegating directly without review gating"),
    StrategyRule("simple_task", _is_simple, Strategy.DIRECT,
                 "Simple task: single direct delegation"),
    StrategyRule("complex_large_scope", _is_complex_large, Strategy.SPLIT,
                 "Complex task with large scope: splitting into subtasks"),
    StrategyRule("complex_feature", _is_complex_feature, Strategy.REVIEW_FIRST,
                 "Complex feature: decomposing with a review stage"),
    StrategyRule("complex_task", _is_complex, Strategy.SPLIT,
                 "Complex task: splitting into subtasks"),
    StrategyRule("multi_file_task", _is_medium_multi_file, Strategy.PARALLEL,
                 "Touches several independent files: running pieces in parallel"),
    StrategyRule("default", _always, Strategy.DIRECT,
                 "Single direct delegation"),
]

TARGET_RULES: List[TargetRule] = [
    TargetRule("critical_priority", _is_critical, manual=False, force_delegate=True,
               reason="Critical priority always delegates"),
    TargetRule("ambiguous_requirements", _is_ambiguous, manual=True, force_delegate=False,
               reason="Requirements look ambiguous; needs manual review before automation"),
    TargetRule("default", _always, manual=False, force_delegate=False, reason=""),
]


class DecisionEngine:
    """Pure, deterministic mapping from TaskAnalysis to Decision."""

    def __init__(
        self,
        config: Optional[DecisionConfig] = None,
        strategy_rules: Optional[Sequence[StrategyRule]] = None,
        target_rules: Optional[Sequence[TargetRule]] = None,
    ):
        self.config = config or DecisionConfig()
        self.strategy_rules = list(strategy_rules or STRATEGY_RULES)
        self.target_rules = list(target_rules or TARGET_RULES)

    @property
    def thresholds(self) -> DecisionConfig:
        return self.config

    def update_thresholds(self, **changes) -> None:
        """Replace policy thresholds; values are re-validated."""
        self.config = DecisionConfig(**{**self.config.model_dump(), **changes})
        logger.info(f"Decision thresholds updated: {', '.join(sorted(changes))}")

    def decide(self, analysis: TaskAnalysis) -> Decision:
        strategy_rule = self._first_match(self.strategy_rules, analysis)
        target_rule = self._first_match(self.target_rules, analysis)

        if target_rule.manual:
            target = DelegateTarget.MANUAL
            should_delegate = False
            reason = target_rule.reason
        elif target_rule.force_delegate:
            target = self.config.default_target
            should_delegate = True
            reason = f"{target_rule.reason}. {strategy_rule.reason}"
        else:
            target = self.config.default_target
            threshold = self.config.delegation_threshold
            should_delegate = analysis.complexity_score >= threshold
            if should_delegate:
                reason = strategy_rule.reason
            else:
                reason = (
                    f"Complexity score {analysis.complexity_score} is below the "
                    f"delegation threshold {threshold}"
                )

        decision = Decision(
            should_delegate=should_delegate,
            delegate_target=target,
            strategy=strategy_rule.strategy,
            options=self._build_options(analysis, strategy_rule.strategy),
            estimated_cost=self.estimate_cost(analysis),
            reason=reason,
            rule=strategy_rule.name,
        )
        logger.debug(
            f"Decision for {analysis.work_item_key or analysis.title[:40]!r}: "
            f"delegate={should_delegate} target={target.value} "
            f"strategy={decision.strategy.value} (rule {strategy_rule.name})"
        )
        return decision

    def _first_match(self, rules, analysis: TaskAnalysis):
        for rule in rules:
            if rule.applies(analysis, self.config):
                return rule
        raise LookupError("Decision rule list has no catch-all rule")

    def _build_options(self, analysis: TaskAnalysis, strategy: Strategy) -> ExecutionOptions:
        critical = analysis.priority_tier == PriorityTier.CRITICAL
        return ExecutionOptions(
            branch_name=self.branch_name_for(analysis),
            create_pr=True,
            require_review=strategy == Strategy.REVIEW_FIRST or not critical,
            timeout=float(self.config.timeouts[analysis.complexity_tier]),
            labels=self._labels_for(analysis),
        )

    def branch_name_for(self, analysis: TaskAnalysis) -> str:
        slug = slugify(analysis.title) or "task"
        if analysis.work_item_key:
            key = slugify(analysis.work_item_key, max_length=40)
            name = f"{self.config.branch_prefix}/{key}-{slug}"
        else:
            name = f"{self.config.branch_prefix}/{slug}"
        return validate_branch_name(name)

    def _labels_for(self, analysis: TaskAnalysis) -> List[str]:
        labels = list(self.config.base_labels)
        labels.append(f"type:{analysis.task_type.value}")
        if analysis.priority_tier in (PriorityTier.HIGH, PriorityTier.CRITICAL):
            labels.append(f"priority:{analysis.priority_tier.value}")
        return labels

    @staticmethod
    def estimate_cost(analysis: TaskAnalysis) -> int:
        """Relative cost units; non-decreasing in complexity score."""
        multiplier = TASK_TYPE_COST_MULTIPLIERS.get(analysis.task_type, 1.0)
        if analysis.priority_tier == PriorityTier.CRITICAL:
            multiplier *= CRITICAL_COST_MULTIPLIER
        return round(analysis.complexity_score * COST_PER_POINT * multiplier)
