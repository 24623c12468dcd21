"""Tests for the Claude CLI executor and its output parsers."""

import json
import stat

import pytest

from boss_agent.errors import ExecutorError
from boss_agent.executors import DryRunExecutor, create_executor
from boss_agent.executors.base import ExecutorHandle, SubmitOptions
from boss_agent.executors.claude_cli import (
    ClaudeCLIExecutor,
    find_pr_url,
    parse_git_log,
    parse_stream_line,
)
from boss_agent.core.config import ExecutorConfig
from boss_agent.core.work_session import WorkSessionFactory
from tests.unit.delegation_fixtures import _git, _init_git_repo, _make_subtask


def _fake_cli(tmp_path, body: str, read_stdin: bool = True):
    """Write an executable shell script standing in for the CLI."""
    script = tmp_path / "fake-claude"
    script.write_text("#!/bin/sh\n" + ("cat > /dev/null\n" if read_stdin else "") + body)
    script.chmod(script.stat().st_mode | stat.S_IEXEC)
    return str(script)


class TestParseStreamLine:
    def test_assistant_text_and_tool_calls(self):
        event = {
            "type": "assistant",
            "message": {
                "content": [
                    {"type": "text", "text": "Looking at the code."},
                    {"type": "tool_use", "name": "Edit"},
                ]
            },
        }
        chunks, summary = [], {}

        parse_stream_line(json.dumps(event), chunks, summary)

        assert chunks == ["Looking at the code.", "\n[Tool Call: Edit]\n"]
        assert summary == {}

    def test_result_event(self):
        event = {"type": "result", "result": "All done", "is_error": False, "total_cost_usd": 0.12}
        chunks, summary = [], {}

        parse_stream_line(json.dumps(event), chunks, summary)

        assert summary == {"result_text": "All done", "is_error": False, "total_cost_usd": 0.12}

    def test_system_init_records_session(self):
        summary = {}
        parse_stream_line(json.dumps({"type": "system", "subtype": "init", "session_id": "s-1"}), [], summary)
        assert summary["session_id"] == "s-1"

    def test_plain_text_is_kept(self):
        chunks = []
        parse_stream_line("not json at all", chunks, {})
        assert chunks == ["not json at all\n"]

    def test_blank_lines_are_ignored(self):
        chunks = []
        parse_stream_line("   ", chunks, {})
        assert chunks == []


class TestParseGitLog:
    def test_commits_with_files(self):
        output = (
            "abc123\x1fAdd login\x1fAda\x1f2026-01-02T10:00:00+00:00\n"
            "\n"
            "src/login.py\n"
            "tests/test_login.py\n"
            "def456\x1fFix typo\x1fBob\x1fnot-a-date\n"
            "README.md\n"
        )

        commits = parse_git_log(output)

        assert [c.hash for c in commits] == ["abc123", "def456"]
        assert commits[0].files == ["src/login.py", "tests/test_login.py"]
        assert commits[0].timestamp.year == 2026
        assert commits[1].timestamp is None
        assert commits[1].author == "Bob"

    def test_malformed_header_is_skipped(self):
        assert parse_git_log("abc\x1fonly two\n") == []

    def test_empty_output(self):
        assert parse_git_log("") == []


class TestFindPrUrl:
    def test_finds_first_url(self):
        text = "Opened https://github.com/acme/api/pull/42 and https://github.com/acme/api/pull/43"
        assert find_pr_url(text) == "https://github.com/acme/api/pull/42"

    def test_no_url(self):
        assert find_pr_url("nothing here") is None
        assert find_pr_url(None) is None


class TestClaudeCLIExecutor:
    def test_build_command(self):
        executor = ClaudeCLIExecutor(model="opus", max_turns=10, allowed_tools=["Read", "Edit"])

        cmd = executor.build_command()

        assert cmd[:2] == ["claude", "--print"]
        assert cmd[cmd.index("--max-turns") + 1] == "10"
        assert cmd[cmd.index("--model") + 1] == "opus"
        assert cmd[cmd.index("--allowedTools") + 1] == "Read,Edit"

    def test_model_flag_omitted_by_default(self):
        assert "--model" not in ClaudeCLIExecutor().build_command()

    @pytest.mark.asyncio
    async def test_missing_executable_raises(self, tmp_path):
        executor = ClaudeCLIExecutor(executable=str(tmp_path / "does-not-exist"))
        with pytest.raises(ExecutorError, match="Could not start"):
            await executor.submit("prompt", SubmitOptions())

    @pytest.mark.asyncio
    async def test_successful_run(self, tmp_path):
        result_line = json.dumps({
            "type": "result",
            "result": "Opened https://github.com/acme/api/pull/7",
            "is_error": False,
        })
        executor = ClaudeCLIExecutor(
            executable=_fake_cli(tmp_path, f"echo '{result_line}'\n"),
            logs_dir=tmp_path / "logs",
        )

        handle = await executor.submit("Do the thing", SubmitOptions())
        result = await executor.await_result(handle, timeout=10)

        assert result.success is True
        assert result.pr_url == "https://github.com/acme/api/pull/7"
        assert result.files_changed == []
        assert (tmp_path / "logs" / f"claude-cli-{handle.id}.log").exists()

    @pytest.mark.asyncio
    async def test_non_zero_exit_is_failure(self, tmp_path):
        executor = ClaudeCLIExecutor(executable=_fake_cli(tmp_path, "echo oops >&2\nexit 3\n"))

        handle = await executor.submit("Do the thing", SubmitOptions())
        result = await executor.await_result(handle, timeout=10)

        assert result.success is False
        assert result.error == "Exit code 3 | STDERR: oops"

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, tmp_path):
        executor = ClaudeCLIExecutor(executable=_fake_cli(tmp_path, "exec sleep 5\n"))

        handle = await executor.submit("Do the thing", SubmitOptions())
        result = await executor.await_result(handle, timeout=0.2)

        assert result.success is False
        assert result.error.startswith("Timed out")

    @pytest.mark.asyncio
    async def test_cancel(self, tmp_path):
        executor = ClaudeCLIExecutor(executable=_fake_cli(tmp_path, "exec sleep 5\n"))

        handle = await executor.submit("Do the thing", SubmitOptions())
        assert await executor.cancel(handle) is True
        result = await executor.await_result(handle, timeout=10)

        assert result.success is False
        assert result.error == "Cancelled"

    @pytest.mark.asyncio
    async def test_unknown_handle(self):
        executor = ClaudeCLIExecutor()
        handle = ExecutorHandle(id="cli-missing")

        result = await executor.await_result(handle)

        assert result.success is False
        assert "Unknown handle" in result.error
        assert await executor.cancel(handle) is False

    @pytest.mark.asyncio
    async def test_exit_before_reading_prompt(self, tmp_path):
        executor = ClaudeCLIExecutor(executable=_fake_cli(tmp_path, "exit 4\n", read_stdin=False))

        with pytest.raises(ExecutorError, match="exited before reading the prompt"):
            await executor.submit("x" * (1 << 20), SubmitOptions())
        assert executor._running == {}

    @pytest.mark.asyncio
    async def test_commits_in_worktree_are_collected(self, tmp_path):
        repo = _init_git_repo(tmp_path / "repo")
        session = WorkSessionFactory(root=tmp_path / "worktrees", repository=repo).create(
            _make_subtask("s1"), "boss/p"
        )
        executor = ClaudeCLIExecutor(executable=_fake_cli(
            tmp_path,
            "echo hi > notes.txt\n"
            "git add notes.txt\n"
            "git -c user.name=Agent -c user.email=agent@example.com commit -q -m 'Add notes'\n",
        ))

        handle = await executor.submit(
            "Write notes", SubmitOptions(working_dir=session.working_dir, branch_name=session.branch_name)
        )
        result = await executor.await_result(handle, timeout=10)

        assert result.success is True
        assert result.files_changed == ["notes.txt"]
        assert [c.message for c in result.commits] == ["Add notes"]
        assert result.commits[0].files == ["notes.txt"]
        assert _git(session.working_dir, "rev-parse", "--abbrev-ref", "HEAD") == "boss/p-s1"


class TestDryRunExecutor:
    @pytest.mark.asyncio
    async def test_records_prompt_and_succeeds(self):
        executor = DryRunExecutor()

        handle = await executor.submit("Write docs", SubmitOptions(branch_name="boss/x"))
        result = await executor.await_result(handle)

        assert executor.prompts[handle.id] == "Write docs"
        assert result.success is True

    @pytest.mark.asyncio
    async def test_cancelled_handle_fails(self):
        executor = DryRunExecutor()
        handle = await executor.submit("Write docs", SubmitOptions())

        assert await executor.cancel(handle) is True
        assert await executor.cancel(handle) is False
        assert (await executor.await_result(handle)).error == "Cancelled"


class TestCreateExecutor:
    def test_dry_run(self):
        assert isinstance(create_executor(ExecutorConfig(kind="dry_run")), DryRunExecutor)

    def test_claude_cli(self):
        executor = create_executor(ExecutorConfig(model="sonnet", max_turns=5))
        assert isinstance(executor, ClaudeCLIExecutor)
        assert executor.model == "sonnet"
        assert executor.max_turns == 5
