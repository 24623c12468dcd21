"""Translate technical errors to user-friendly messages."""

import re
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class UserFriendlyError:
    """User-friendly error representation."""
    original_error: Exception
    title: str
    explanation: str
    actions: List[str]
    show_technical: bool = False


class ErrorTranslator:
    """Translate technical errors to user-friendly messages."""

    ERROR_PATTERNS = {
        r"CircularDependencyError": {
            "title": "Subtasks could not be scheduled",
            "explanation": "The decomposed subtasks depend on each other in a cycle, so none of the remaining ones can start.",
            "actions": [
                "Inspect the decomposition: boss-agent analyze \"<title>\"",
                "Check any custom agent templates for dependency loops",
            ],
        },

        r"DecompositionError": {
            "title": "Invalid subtask plan",
            "explanation": "A subtask references a dependency that does not exist, or two subtasks share an id.",
            "actions": [
                "Inspect the decomposition: boss-agent analyze \"<title>\"",
            ],
        },

        r"SessionConflictError": {
            "title": "Work item is already running",
            "explanation": "A delegated run for this work item is still active.",
            "actions": [
                "List active runs: boss-agent sessions list --active",
                "Wait for the active run to finish, or cancel it",
            ],
        },

        r"JIRA.*401|Unauthorized.*JIRA": {
            "title": "JIRA authentication failed",
            "explanation": "Your JIRA API token is invalid or expired.",
            "actions": [
                "Generate new API token: https://id.atlassian.com/manage-profile/security/api-tokens",
                "Update jira.api_token in config/boss-agent.yaml",
                "Verify JIRA server URL is correct",
            ],
        },

        r"claude.*not found|No such file or directory: 'claude'": {
            "title": "Executor not installed",
            "explanation": "The Claude CLI executable could not be found on PATH.",
            "actions": [
                "Install the Claude CLI, or set executor.executable in config",
                "Preview without executing: boss-agent run --dry-run",
            ],
        },

        r"connection.*refused|connection.*timeout|network.*unreachable": {
            "title": "Cannot connect to service",
            "explanation": "Unable to reach the issue tracker or executor. This could be a network issue or service outage.",
            "actions": [
                "Check your internet connection",
                "Verify service URLs in configuration",
                "Try again in a few minutes",
            ],
        },

        r"config.*not.*found|no such file.*config": {
            "title": "Configuration missing",
            "explanation": "The configuration file was not found.",
            "actions": [
                "Create config/boss-agent.yaml or pass --config",
            ],
        },
    }

    def translate(self, error: Exception) -> UserFriendlyError:
        """Convert exception to user-friendly format."""
        full_error = f"{type(error).__name__}: {error}"

        for pattern, translation in self.ERROR_PATTERNS.items():
            if re.search(pattern, full_error, re.IGNORECASE):
                return UserFriendlyError(
                    original_error=error,
                    title=translation["title"],
                    explanation=translation["explanation"],
                    actions=translation["actions"],
                )

        return UserFriendlyError(
            original_error=error,
            title="Unexpected error",
            explanation=str(error),
            actions=[
                "Re-run with --log-level DEBUG",
                "Check logs for details",
            ],
            show_technical=True,
        )

    def format_for_cli(self, friendly_error: UserFriendlyError) -> str:
        """Format error for CLI display."""
        output = f"[bold red]{friendly_error.title}[/]\n\n"
        output += f"{friendly_error.explanation}\n\n"

        output += "[bold]How to fix:[/]\n"
        for i, action in enumerate(friendly_error.actions, 1):
            output += f"  {i}. {action}\n"

        if friendly_error.show_technical:
            output += f"\n[dim]Technical details:[/]\n[dim]{friendly_error.original_error}[/]"

        return output
