"""Typed errors and user-facing error translation."""

from .exceptions import (
    BossAgentError,
    CircularDependencyError,
    DecompositionError,
    ExecutorError,
    SessionConflictError,
)
from .translator import ErrorTranslator, UserFriendlyError

__all__ = [
    "BossAgentError",
    "CircularDependencyError",
    "DecompositionError",
    "ExecutorError",
    "SessionConflictError",
    "ErrorTranslator",
    "UserFriendlyError",
]
