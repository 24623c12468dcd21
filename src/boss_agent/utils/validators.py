"""Validation helpers for branch names and identifiers."""

import re


def validate_branch_name(branch_name: str) -> str:
    """
    Validate git branch name.

    Raises:
        ValueError: If branch name is invalid
    """
    if not branch_name:
        raise ValueError("Branch name cannot be empty")

    # Strict whitelist
    if not re.match(r'^[a-zA-Z0-9/_.-]+$', branch_name):
        raise ValueError(f"Invalid branch name: {branch_name}")

    if branch_name.startswith('/') or branch_name.endswith('/'):
        raise ValueError("Branch name cannot start or end with /")

    if '..' in branch_name or '@{' in branch_name or branch_name.endswith('.lock'):
        raise ValueError("Branch name contains invalid sequence")

    if len(branch_name) > 255:
        raise ValueError("Branch name too long")

    return branch_name


def validate_identifier(value: str, name: str = "identifier") -> str:
    """
    Validate a run or subtask id before it is used as a path segment.

    Raises:
        ValueError: If identifier is invalid
    """
    if not value:
        raise ValueError(f"{name} cannot be empty")

    if not re.match(r'^[a-zA-Z0-9_.-]+$', value):
        raise ValueError(f"Invalid {name}: {value}")

    if '..' in value:
        raise ValueError(f"{name} contains invalid characters: {value}")

    if len(value) > 128:
        raise ValueError(f"{name} too long")

    return value


def slugify(text: str, max_length: int = 50) -> str:
    """Lower-case, hyphen-separated slug safe for branch names."""
    slug = re.sub(r'[^a-z0-9]+', '-', text.lower()).strip('-')
    return slug[:max_length].rstrip('-')
