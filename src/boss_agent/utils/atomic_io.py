"""Atomic file I/O operations."""

import os
import logging
from pathlib import Path

from pydantic import BaseModel

logger = logging.getLogger(__name__)


def atomic_write_text(file_path: Path, content: str, max_retries: int = 3) -> None:
    """
    Atomically write content to a file using temp file + rename.

    The file is either fully written or left untouched, so a concurrent reader
    never observes a half-written session document.

    Raises:
        OSError: If write fails after all retries
    """
    # PID suffix keeps temp files from colliding across processes
    tmp_file = file_path.with_suffix(f'{file_path.suffix}.tmp.{os.getpid()}')

    last_error = None
    for attempt in range(max_retries):
        try:
            tmp_file.write_text(content)
            tmp_file.replace(file_path)
            return
        except OSError as e:
            last_error = e
            if attempt < max_retries - 1:
                logger.warning(
                    f"Failed to write {file_path} (attempt {attempt + 1}/{max_retries}): {e}"
                )
        finally:
            if tmp_file.exists():
                try:
                    tmp_file.unlink()
                except OSError:
                    logger.debug(f"Could not remove temp file {tmp_file}")

    logger.error(f"Failed to write {file_path} after {max_retries} attempts: {last_error}")
    raise last_error


def atomic_write_model(file_path: Path, model: BaseModel, indent: int = 2) -> None:
    """Atomically write a Pydantic model to a JSON file."""
    atomic_write_text(file_path, model.model_dump_json(indent=indent))
