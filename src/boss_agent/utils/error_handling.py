"""Standardized error handling utilities."""

import functools
import logging
from typing import Any, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


def log_and_ignore(
    error: Exception,
    message: str,
    *,
    logger_instance: Optional[logging.Logger] = None,
    level: int = logging.WARNING,
) -> None:
    """
    Log an error and ignore it (don't re-raise).

    Use for advisory side channels (observer callbacks, background cleanup)
    whose failure must not interrupt a run.

    Args:
        error: Exception to log
        message: Context message to log
        logger_instance: Logger to use (defaults to module logger)
        level: Log level (default: WARNING)
    """
    log = logger_instance or logger
    log.log(level, f"{message}: {error}")


def handle_filesystem_errors(
    operation: str,
    *,
    logger_instance: Optional[logging.Logger] = None,
) -> Callable:
    """
    Decorator that logs filesystem errors with consistent messaging and re-raises.

    Args:
        operation: Description of the operation (e.g., "write session")
        logger_instance: Logger to use (defaults to module logger)
    """
    log = logger_instance or logger

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            try:
                return func(*args, **kwargs)
            except PermissionError as e:
                log.error(f"Permission denied during {operation}: {e}")
                raise
            except FileNotFoundError as e:
                log.error(f"File not found during {operation}: {e}")
                raise
            except OSError as e:
                log.error(f"OS error during {operation}: {e}")
                raise

        return wrapper

    return decorator


class ErrorContext:
    """
    Context manager for handling errors with consistent logging.

    Usage:
        with ErrorContext("converting issue", raise_on_error=False) as ctx:
            item = convert(issue)
        item = ctx.get_result(item)
    """

    def __init__(
        self,
        operation: str,
        *,
        raise_on_error: bool = True,
        default_value: Any = None,
        logger_instance: Optional[logging.Logger] = None,
        log_level: int = logging.ERROR,
    ):
        self.operation = operation
        self.raise_on_error = raise_on_error
        self.default_value = default_value
        self.logger = logger_instance or logger
        self.log_level = log_level
        self.error: Optional[Exception] = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None and issubclass(exc_type, Exception):
            self.error = exc_val
            self.logger.log(
                self.log_level,
                f"Error during {self.operation}: {exc_val}",
            )
            return not self.raise_on_error
        return False

    def get_result(self, result: Any = None) -> Any:
        """Return result, or default_value if an error was suppressed."""
        if self.error is not None:
            return self.default_value
        return result
