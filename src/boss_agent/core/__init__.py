"""Core models, configuration and planning policy."""

from .task import (
    AgentRole,
    ComplexityTier,
    Decision,
    DelegationResult,
    Decomposition,
    ExecutionResult,
    ExecutionStatus,
    PriorityTier,
    SessionStatus,
    Strategy,
    Subtask,
    SubtaskResult,
    TaskAnalysis,
    TaskSession,
    TaskType,
    TriggerComment,
    WorkItem,
)
from .config import BossAgentConfig, load_config
from .decision_engine import DecisionEngine
from .task_analyzer import TaskAnalyzer
from .task_decomposer import TaskDecomposer

__all__ = [
    "AgentRole",
    "ComplexityTier",
    "Decision",
    "DelegationResult",
    "Decomposition",
    "ExecutionResult",
    "ExecutionStatus",
    "PriorityTier",
    "SessionStatus",
    "Strategy",
    "Subtask",
    "SubtaskResult",
    "TaskAnalysis",
    "TaskSession",
    "TaskType",
    "TriggerComment",
    "WorkItem",
    "BossAgentConfig",
    "load_config",
    "DecisionEngine",
    "TaskAnalyzer",
    "TaskDecomposer",
]
