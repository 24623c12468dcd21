"""Data models for work items, analyses, decisions, subtasks and sessions."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class TaskType(str, Enum):
    """Kind of work a work item asks for."""
    FEATURE = "feature"
    BUG = "bug"
    REFACTOR = "refactor"
    TEST = "test"
    DOCS = "docs"
    MIXED = "mixed"


class ComplexityTier(str, Enum):
    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"


class PriorityTier(str, Enum):
    """Priority tiers, ordered from least to most urgent."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def urgency(self) -> int:
        return _PRIORITY_URGENCY[self]

    def is_more_urgent_than(self, other: "PriorityTier") -> bool:
        return self.urgency > other.urgency


_PRIORITY_URGENCY = {
    PriorityTier.LOW: 0,
    PriorityTier.MEDIUM: 1,
    PriorityTier.HIGH: 2,
    PriorityTier.CRITICAL: 3,
}


class Strategy(str, Enum):
    """Execution strategy for a delegated run or a set of subtasks."""
    DIRECT = "direct"
    SPLIT = "split"
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    HYBRID = "hybrid"
    REVIEW_FIRST = "review_first"


class DelegateTarget(str, Enum):
    CODEGEN = "codegen"
    CLAUDE = "claude"
    MANUAL = "manual"


class AgentRole(str, Enum):
    """Specialist roles a subtask can require."""
    CODE_WRITER = "code_writer"
    TEST_WRITER = "test_writer"
    REVIEWER = "reviewer"
    DOCUMENTATION = "documentation"
    DEBUGGER = "debugger"
    REFACTORER = "refactorer"
    GENERAL = "general"


class SubtaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class DelegationStatus(str, Enum):
    PLANNING = "planning"
    EXECUTING = "executing"
    AGGREGATING = "aggregating"
    COMPLETED = "completed"
    FAILED = "failed"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not SessionStatus.ACTIVE


class ExecutionStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class InvalidTransitionError(RuntimeError):
    """Raised when a subtask is moved through an illegal status transition."""


# -- Inputs ---------------------------------------------------------------


class WorkItem(BaseModel):
    """Externally tracked unit of work, e.g. a Jira issue. Read-only input."""

    model_config = ConfigDict(frozen=True)

    id: str
    key: str  # human identifier such as "PROJ-123"
    title: str
    description: Optional[str] = None
    priority_hint: Optional[PriorityTier] = None
    labels: list[str] = Field(default_factory=list)
    url: Optional[str] = None


class TriggerComment(BaseModel):
    model_config = ConfigDict(frozen=True)

    body: str
    author: Optional[str] = None


# -- Analysis and decision ----------------------------------------------


class ScopeEstimate(BaseModel):
    model_config = ConfigDict(frozen=True)

    files_affected: Optional[int] = None
    lines_of_code: Optional[int] = None
    files: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)


class AnalysisContext(BaseModel):
    """References pulled out of the work item text."""

    model_config = ConfigDict(frozen=True)

    repository: Optional[str] = None
    related_issues: list[str] = Field(default_factory=list)
    file_paths: list[str] = Field(default_factory=list)


class TaskAnalysis(BaseModel):
    """Structured classification of a work item. Immutable once produced."""

    model_config = ConfigDict(frozen=True)

    title: str = ""
    work_item_key: Optional[str] = None
    task_type: TaskType
    complexity_tier: ComplexityTier
    priority_tier: PriorityTier
    complexity_score: int = Field(ge=1, le=10)
    keywords: frozenset[str] = Field(default_factory=frozenset)
    scope: ScopeEstimate = Field(default_factory=ScopeEstimate)
    estimated_subtask_count: int = Field(default=1, ge=1)
    estimated_time: str = ""
    ambiguity_signals: frozenset[str] = Field(default_factory=frozenset)
    context: AnalysisContext = Field(default_factory=AnalysisContext)
    reasoning: str = ""


class ExecutionOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    branch_name: Optional[str] = None
    create_pr: bool = True
    require_review: bool = True
    timeout: Optional[float] = None  # seconds
    labels: list[str] = Field(default_factory=list)


class Decision(BaseModel):
    model_config = ConfigDict(frozen=True)

    should_delegate: bool
    delegate_target: DelegateTarget
    strategy: Strategy
    options: ExecutionOptions = Field(default_factory=ExecutionOptions)
    estimated_cost: Optional[int] = None
    reason: Optional[str] = None
    rule: Optional[str] = None  # name of the rule that picked the strategy


# -- Subtasks -------------------------------------------------------------


class Subtask(BaseModel):
    """One unit of decomposed work.

    Status moves pending -> running -> completed|failed exactly once. A
    subtask that never ran (blocked dependency, cancelled run) may go straight
    from pending to failed.
    """

    id: str
    title: str
    description: str = ""
    required_agent_role: AgentRole = AgentRole.GENERAL
    dependencies: list[str] = Field(default_factory=list)
    priority: int = 5
    complexity: int = 5
    status: SubtaskStatus = SubtaskStatus.PENDING
    result_handle: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (SubtaskStatus.COMPLETED, SubtaskStatus.FAILED)

    def mark_running(self) -> None:
        if self.status != SubtaskStatus.PENDING:
            raise InvalidTransitionError(
                f"Subtask {self.id} cannot start from status {self.status.value}"
            )
        self.status = SubtaskStatus.RUNNING

    def mark_completed(self, result_handle: Optional[str] = None) -> None:
        if self.status != SubtaskStatus.RUNNING:
            raise InvalidTransitionError(
                f"Subtask {self.id} cannot complete from status {self.status.value}"
            )
        self.status = SubtaskStatus.COMPLETED
        if result_handle:
            self.result_handle = result_handle

    def mark_failed(self, error: Optional[str] = None) -> None:
        if self.is_terminal:
            raise InvalidTransitionError(
                f"Subtask {self.id} already finished with status {self.status.value}"
            )
        self.status = SubtaskStatus.FAILED
        self.error = error


class Decomposition(BaseModel):
    subtasks: list[Subtask]
    strategy: Strategy
    estimated_minutes: int


class GitCommit(BaseModel):
    hash: str
    message: str
    author: str = ""
    timestamp: Optional[datetime] = None
    files: list[str] = Field(default_factory=list)

    @field_serializer("timestamp")
    def serialize_datetime(self, v: Optional[datetime]) -> Optional[str]:
        return v.isoformat() if v else None


class SubtaskResult(BaseModel):
    """Outcome of one subtask, produced exactly once per execution."""

    subtask_id: str
    success: bool
    output: Optional[str] = None
    error: Optional[str] = None
    files_modified: list[str] = Field(default_factory=list)
    commits: list[GitCommit] = Field(default_factory=list)
    duration_ms: int = 0
    pr_url: Optional[str] = None


class DelegationResult(BaseModel):
    success: bool
    subtask_results: list[SubtaskResult] = Field(default_factory=list)
    files_modified: list[str] = Field(default_factory=list)
    commits: list[GitCommit] = Field(default_factory=list)
    total_duration_ms: int = 0
    failed_subtasks: list[str] = Field(default_factory=list)
    summary: str = ""


# -- Run records ----------------------------------------------------------


class DelegationSession(BaseModel):
    """Ephemeral record of one orchestration request."""

    id: str
    work_item_id: str
    analysis: TaskAnalysis
    decision: Decision
    decomposition: Optional[Decomposition] = None
    status: DelegationStatus = DelegationStatus.PLANNING
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    completed_at: Optional[datetime] = None

    def transition(self, status: DelegationStatus) -> None:
        self.status = status
        if status in (DelegationStatus.COMPLETED, DelegationStatus.FAILED):
            self.completed_at = datetime.now(UTC)


class TaskSessionResult(BaseModel):
    pr_url: Optional[str] = None
    files_changed: list[str] = Field(default_factory=list)
    commit_count: int = 0
    duration_ms: int = 0
    summary: Optional[str] = None


class TaskSessionError(BaseModel):
    message: str
    code: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)


class TaskSession(BaseModel):
    """Durable index entry linking a run id to a work item id."""

    run_id: str
    work_item_id: str
    work_item_label: str
    title: str = ""
    status: SessionStatus = SessionStatus.ACTIVE
    delegated_to: Optional[DelegateTarget] = None
    strategy: Optional[Strategy] = None
    progress: int = Field(default=0, ge=0, le=100)
    current_step: Optional[str] = None
    result: Optional[TaskSessionResult] = None
    error: Optional[TaskSessionError] = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    last_updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_serializer("started_at", "last_updated_at")
    def serialize_datetime(self, v: Optional[datetime]) -> Optional[str]:
        return v.isoformat() if v else None


class ExecutionResult(BaseModel):
    """Terminal outcome of a delegated run, returned to the caller."""

    run_id: str
    work_item_id: str
    status: ExecutionStatus
    strategy: Optional[Strategy] = None
    result: Optional[DelegationResult] = None
    error: Optional[str] = None
    duration_ms: int = 0
    started_at: datetime
    completed_at: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.SUCCESS

    @field_serializer("started_at", "completed_at")
    def serialize_datetime(self, v: Optional[datetime]) -> Optional[str]:
        return v.isoformat() if v else None
