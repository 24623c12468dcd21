"""Shared utility functions."""

from .atomic_io import atomic_write_model, atomic_write_text
from .error_handling import ErrorContext, handle_filesystem_errors, log_and_ignore
from .keyed_lock import KeyedLock
from .rich_logging import BossLogFormatter, ContextLogger, setup_rich_logging
from .validators import slugify, validate_branch_name, validate_identifier

__all__ = [
    # Atomic I/O
    "atomic_write_model",
    "atomic_write_text",
    # Error handling
    "ErrorContext",
    "handle_filesystem_errors",
    "log_and_ignore",
    # Locking
    "KeyedLock",
    # Logging
    "BossLogFormatter",
    "ContextLogger",
    "setup_rich_logging",
    # Validators
    "slugify",
    "validate_branch_name",
    "validate_identifier",
]
