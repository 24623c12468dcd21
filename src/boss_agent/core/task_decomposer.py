"""Task decomposition: expands a work item into a graph of dependent subtasks."""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from ..errors import DecompositionError
from .config import DecompositionConfig
from .task import AgentRole, Decomposition, Strategy, Subtask, TaskAnalysis, TaskType

logger = logging.getLogger(__name__)

DESCRIPTION_LIMIT = 200
PADDING_DESCRIPTION_LIMIT = 150


@dataclass(frozen=True)
class StageTemplate:
    """One stage of a canonical chain.

    ``depends_on`` names earlier stages of the same template only, which keeps
    every template acyclic.
    """

    key: str
    title: str
    role: AgentRole
    complexity: int
    priority: int
    depends_on: Tuple[str, ...] = ()


TEMPLATES: Dict[TaskType, Tuple[StageTemplate, ...]] = {
    TaskType.FEATURE: (
        StageTemplate("implement", "Implement {title}", AgentRole.CODE_WRITER, 7, 10),
        StageTemplate("test", "Write tests for {title}", AgentRole.TEST_WRITER, 5, 8, ("implement",)),
        StageTemplate("document", "Document {title}", AgentRole.DOCUMENTATION, 3, 6, ("implement",)),
        StageTemplate("review", "Review {title}", AgentRole.REVIEWER, 4, 9, ("implement", "test")),
    ),
    TaskType.BUG: (
        StageTemplate("debug", "Find the root cause of {title}", AgentRole.DEBUGGER, 6, 10),
        StageTemplate("fix", "Fix {title}", AgentRole.CODE_WRITER, 5, 9, ("debug",)),
        StageTemplate("regression", "Add regression tests for {title}", AgentRole.TEST_WRITER, 4, 8, ("fix",)),
    ),
    TaskType.REFACTOR: (
        StageTemplate("implement", "Refactor {title}", AgentRole.REFACTORER, 7, 10),
        StageTemplate("test", "Verify behaviour after refactoring {title}", AgentRole.TEST_WRITER, 4, 9, ("implement",)),
        StageTemplate("review", "Review refactoring of {title}", AgentRole.REVIEWER, 3, 8, ("implement", "test")),
    ),
    TaskType.TEST: (
        StageTemplate("test", "Write tests: {title}", AgentRole.TEST_WRITER, 6, 10),
    ),
    TaskType.DOCS: (
        StageTemplate("document", "Write documentation: {title}", AgentRole.DOCUMENTATION, 4, 10),
    ),
    TaskType.MIXED: (
        StageTemplate("implement", "Implement {title}", AgentRole.GENERAL, 7, 10),
        StageTemplate("test", "Write tests for {title}", AgentRole.TEST_WRITER, 5, 8, ("implement",)),
        StageTemplate("review", "Review {title}", AgentRole.REVIEWER, 4, 9, ("implement", "test")),
    ),
}

PADDING_ROLE = AgentRole.GENERAL
PADDING_COMPLEXITY = 5


def template_roles() -> List[AgentRole]:
    """Every role a decomposition can require."""
    roles = {stage.role for stages in TEMPLATES.values() for stage in stages}
    roles.add(PADDING_ROLE)
    return sorted(roles, key=lambda r: r.value)


def validate_subtasks(subtasks: Iterable[Subtask]) -> None:
    """Raise DecompositionError on duplicate ids or dangling dependency ids."""
    seen = set()
    items = list(subtasks)
    for subtask in items:
        if subtask.id in seen:
            raise DecompositionError(f"Duplicate subtask id: {subtask.id}")
        seen.add(subtask.id)

    for subtask in items:
        for dep in subtask.dependencies:
            if dep not in seen:
                raise DecompositionError(
                    f"Subtask {subtask.id} depends on unknown subtask {dep}"
                )
            if dep == subtask.id:
                raise DecompositionError(f"Subtask {subtask.id} depends on itself")


class TaskDecomposer:
    """Expands a task into a canonical chain of subtasks plus generic padding."""

    def __init__(self, config: Optional[DecompositionConfig] = None):
        self.config = config or DecompositionConfig()

    def decompose(
        self,
        title: str,
        description: Optional[str],
        analysis: TaskAnalysis,
        parent_id: Optional[str] = None,
    ) -> Decomposition:
        """
        Build the subtask graph for a task.

        Args:
            title: Work item title
            description: Work item description (may be empty)
            analysis: Classification of the work item
            parent_id: Prefix for subtask ids; defaults to the work item key

        Returns:
            Decomposition with subtasks, execution strategy and time estimate
        """
        prefix = parent_id or analysis.work_item_key or "task"
        description = description or ""

        subtasks = self._from_template(prefix, title, description, analysis.task_type)
        target = min(analysis.estimated_subtask_count, self.config.max_subtasks)
        if len(subtasks) < target:
            subtasks.extend(self._padding(prefix, title, description, len(subtasks), target))

        validate_subtasks(subtasks)
        strategy = self.choose_strategy(subtasks)
        estimated_minutes = (
            sum(s.complexity for s in subtasks) * self.config.minutes_per_complexity_point
        )

        logger.info(
            f"Decomposed '{title[:60]}' into {len(subtasks)} subtasks "
            f"({analysis.task_type.value}, strategy {strategy.value}, ~{estimated_minutes} min)"
        )
        return Decomposition(
            subtasks=subtasks,
            strategy=strategy,
            estimated_minutes=estimated_minutes,
        )

    def _from_template(
        self, prefix: str, title: str, description: str, task_type: TaskType
    ) -> List[Subtask]:
        stages = TEMPLATES.get(task_type, TEMPLATES[TaskType.MIXED])
        ids: Dict[str, str] = {}
        subtasks = []

        for index, stage in enumerate(stages, 1):
            subtask_id = f"{prefix}-sub{index}"
            ids[stage.key] = subtask_id
            subtasks.append(Subtask(
                id=subtask_id,
                title=stage.title.format(title=title),
                description=description[:DESCRIPTION_LIMIT],
                required_agent_role=stage.role,
                dependencies=[ids[key] for key in stage.depends_on],
                priority=stage.priority,
                complexity=stage.complexity,
            ))

        return subtasks

    def _padding(
        self, prefix: str, title: str, description: str, start: int, target: int
    ) -> List[Subtask]:
        """Generic subtasks chained linearly; the first padded one is independent."""
        padded: List[Subtask] = []
        for offset in range(target - start):
            index = start + offset + 1
            padded.append(Subtask(
                id=f"{prefix}-sub{index}",
                title=f"Subtask {index}: {title}",
                description=description[:PADDING_DESCRIPTION_LIMIT],
                required_agent_role=PADDING_ROLE,
                dependencies=[padded[-1].id] if padded else [],
                priority=max(1, 10 - offset),
                complexity=PADDING_COMPLEXITY,
            ))
        return padded

    def choose_strategy(self, subtasks: List[Subtask]) -> Strategy:
        """Pick sequential, parallel or hybrid from dependency edge density."""
        if not subtasks:
            return Strategy.PARALLEL

        edges = sum(len(s.dependencies) for s in subtasks)
        density = edges / len(subtasks)
        if density > self.config.sequential_density:
            return Strategy.SEQUENTIAL
        if edges == 0 or density < self.config.parallel_density:
            return Strategy.PARALLEL
        return Strategy.HYBRID
