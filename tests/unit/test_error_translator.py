"""Tests for ErrorTranslator: verifies user-friendly error messages."""

from boss_agent.errors import (
    CircularDependencyError,
    DecompositionError,
    ErrorTranslator,
    SessionConflictError,
    UserFriendlyError,
)


class TestDomainErrorTranslation:
    def test_circular_dependency(self):
        translator = ErrorTranslator()

        result = translator.translate(CircularDependencyError(["a", "b"]))

        assert isinstance(result, UserFriendlyError)
        assert result.title == "Subtasks could not be scheduled"
        assert "cycle" in result.explanation
        assert result.show_technical is False

    def test_decomposition_error(self):
        result = ErrorTranslator().translate(DecompositionError("Subtask a depends on unknown subtask b"))
        assert result.title == "Invalid subtask plan"

    def test_session_conflict(self):
        result = ErrorTranslator().translate(SessionConflictError("10001", "boss-1"))
        assert result.title == "Work item is already running"
        assert any("sessions list --active" in a for a in result.actions)


class TestServiceErrorTranslation:
    def test_jira_auth(self):
        result = ErrorTranslator().translate(Exception("JIRA returned 401"))
        assert result.title == "JIRA authentication failed"

    def test_missing_cli(self):
        result = ErrorTranslator().translate(FileNotFoundError("No such file or directory: 'claude'"))
        assert result.title == "Executor not installed"

    def test_connection_refused(self):
        result = ErrorTranslator().translate(ConnectionError("Connection refused"))
        assert result.title == "Cannot connect to service"


class TestFallback:
    def test_unknown_error_shows_technical_details(self):
        translator = ErrorTranslator()

        result = translator.translate(RuntimeError("something odd"))

        assert result.title == "Unexpected error"
        assert result.explanation == "something odd"
        assert result.show_technical is True

    def test_format_for_cli(self):
        translator = ErrorTranslator()
        text = translator.format_for_cli(translator.translate(RuntimeError("something odd")))

        assert "[bold red]Unexpected error[/]" in text
        assert "  1. Re-run with --log-level DEBUG" in text
        assert "Technical details" in text

    def test_format_without_technical_details(self):
        translator = ErrorTranslator()
        text = translator.format_for_cli(translator.translate(SessionConflictError("1", "boss-1")))
        assert "Technical details" not in text
