"""Executor that runs each submission as a Claude CLI subprocess."""

import asyncio
import json
import logging
import os
import re
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..core.task import GitCommit
from ..errors import ExecutorError
from .base import ExecutorAdapter, ExecutorHandle, ExecutorResult, SubmitOptions

logger = logging.getLogger(__name__)

# Env vars stripped from the subprocess so the agent's shell tool can't read tracker credentials
_SENSITIVE_ENV_VARS = frozenset({'JIRA_API_TOKEN', 'JIRA_EMAIL', 'BOSS_AGENT_JIRA__API_TOKEN'})

_PR_URL_PATTERN = re.compile(r"https://github\.com/[\w.-]+/[\w.-]+/pull/\d+")

# Field separator for git log output
_LOG_SEP = "\x1f"

DEFAULT_TIMEOUT = 2 * 60 * 60


def parse_stream_line(line: str, text_chunks: List[str], summary: Dict) -> None:
    """Parse one line of ``--output-format stream-json`` output.

    Assistant text is appended to ``text_chunks``; the final result event
    populates ``summary`` with ``result_text``, ``is_error`` and cost.
    """
    line = line.strip()
    if not line:
        return

    try:
        event = json.loads(line)
    except (json.JSONDecodeError, ValueError):
        # Not JSON: CLI version mismatch or plain output, keep as raw text
        text_chunks.append(line + "\n")
        return

    event_type = event.get("type")

    if event_type == "assistant":
        for block in event.get("message", {}).get("content", []):
            if block.get("type") == "text":
                text_chunks.append(block.get("text", ""))
            elif block.get("type") == "tool_use":
                text_chunks.append(f"\n[Tool Call: {block.get('name', 'unknown')}]\n")

    elif event_type == "result":
        if event.get("result"):
            summary["result_text"] = event["result"]
        summary["is_error"] = bool(event.get("is_error", False))
        summary["total_cost_usd"] = event.get("total_cost_usd")

    elif event_type == "system":
        if event.get("subtype") == "init" and event.get("session_id"):
            summary["session_id"] = event["session_id"]

    else:
        logger.debug(f"Unknown stream-json event type: {event_type}")


def parse_git_log(output: str) -> List[GitCommit]:
    """Parse ``git log --format=%H<US>%s<US>%an<US>%aI --name-only`` output."""
    commits: List[GitCommit] = []
    current: Optional[GitCommit] = None

    for raw in output.splitlines():
        line = raw.strip()
        if not line:
            continue
        if _LOG_SEP in line:
            parts = line.split(_LOG_SEP)
            if len(parts) < 4:
                logger.debug(f"Skipping malformed git log line: {line!r}")
                continue
            sha, message, author, stamp = parts[:4]
            try:
                timestamp = datetime.fromisoformat(stamp)
            except ValueError:
                timestamp = None
            current = GitCommit(hash=sha, message=message, author=author, timestamp=timestamp)
            commits.append(current)
        elif current is not None:
            current.files.append(line)

    return commits


def find_pr_url(text: str) -> Optional[str]:
    match = _PR_URL_PATTERN.search(text or "")
    return match.group(0) if match else None


@dataclass
class _RunningProcess:
    process: asyncio.subprocess.Process
    completion: asyncio.Task
    working_dir: Optional[Path]
    base_sha: Optional[str]
    started: float
    text_chunks: List[str] = field(default_factory=list)
    stderr_chunks: List[str] = field(default_factory=list)
    summary: Dict = field(default_factory=dict)
    cancelled: bool = False


class ClaudeCLIExecutor(ExecutorAdapter):
    """
    Runs ``claude --print`` per submission.

    The prompt is written to stdin, ``stream-json`` output is consumed in the
    background from submit onward, and once the process exits the commits and
    changed files are read back from git in the working directory.
    """

    name = "claude_cli"

    def __init__(
        self,
        executable: str = "claude",
        model: Optional[str] = None,
        max_turns: int = 50,
        allowed_tools: Optional[List[str]] = None,
        logs_dir: Optional[Path] = None,
    ):
        self.executable = executable
        self.model = model
        self.max_turns = max_turns
        self.allowed_tools = allowed_tools or []
        self.logs_dir = logs_dir
        self._running: Dict[str, _RunningProcess] = {}

    def build_command(self) -> List[str]:
        cmd = [
            self.executable,
            "--print",
            "--output-format", "stream-json",
            "--verbose",
            "--dangerously-skip-permissions",
            "--max-turns", str(self.max_turns),
        ]
        if self.model:
            cmd.extend(["--model", self.model])
        if self.allowed_tools:
            cmd.extend(["--allowedTools", ",".join(self.allowed_tools)])
        return cmd

    async def submit(self, prompt: str, options: SubmitOptions) -> ExecutorHandle:
        handle_id = f"cli-{uuid.uuid4().hex[:12]}"
        cwd = options.working_dir

        base_sha = None
        if cwd is not None and (cwd / ".git").exists():
            if options.branch_name:
                _, current = await _git(cwd, "rev-parse", "--abbrev-ref", "HEAD")
                if current.strip() != options.branch_name:
                    await _git(cwd, "checkout", "-B", options.branch_name)
            base_sha = (await _git(cwd, "rev-parse", "HEAD"))[1].strip() or None

        env = os.environ.copy()
        env['CLAUDE_CODE_DISABLE_EXPERIMENTAL_BETAS'] = '1'
        env['BOSS_AGENT_HANDLE_ID'] = handle_id
        for key in _SENSITIVE_ENV_VARS:
            env.pop(key, None)

        try:
            process = await asyncio.create_subprocess_exec(
                *self.build_command(),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                cwd=str(cwd) if cwd else None,
            )
        except OSError as e:
            raise ExecutorError(f"Could not start {self.executable}: {e}") from e

        try:
            process.stdin.write(prompt.encode())
            await process.stdin.drain()
            process.stdin.close()
        except (BrokenPipeError, ConnectionResetError) as e:
            if process.returncode is None:
                process.kill()
            await process.wait()
            raise ExecutorError(
                f"{self.executable} exited before reading the prompt (exit code {process.returncode})"
            ) from e

        running = _RunningProcess(
            process=process,
            completion=None,
            working_dir=cwd,
            base_sha=base_sha,
            started=time.monotonic(),
        )
        running.completion = asyncio.create_task(self._consume(running))
        self._running[handle_id] = running

        logger.info(f"Started {self.executable} for {handle_id} (pid {process.pid}, cwd {cwd or '.'})")
        return ExecutorHandle(id=handle_id, metadata={"pid": process.pid, "branch": options.branch_name})

    async def _consume(self, running: _RunningProcess) -> None:
        async def read_stdout(stream):
            buffer = b""
            while True:
                chunk = await stream.read(4096)
                if not chunk:
                    if buffer:
                        parse_stream_line(buffer.decode(errors='replace'), running.text_chunks, running.summary)
                    return
                buffer += chunk
                while b"\n" in buffer:
                    line_bytes, buffer = buffer.split(b"\n", 1)
                    parse_stream_line(line_bytes.decode(errors='replace'), running.text_chunks, running.summary)

        async def read_stderr(stream):
            while True:
                chunk = await stream.read(4096)
                if not chunk:
                    return
                running.stderr_chunks.append(chunk.decode(errors='replace'))

        await asyncio.gather(
            read_stdout(running.process.stdout),
            read_stderr(running.process.stderr),
            running.process.wait(),
        )

    async def await_result(
        self,
        handle: ExecutorHandle,
        poll_interval: float = 30.0,
        timeout: Optional[float] = None,
    ) -> ExecutorResult:
        running = self._running.get(handle.id)
        if running is None:
            return ExecutorResult(success=False, error=f"Unknown handle {handle.id}")

        timeout = timeout or DEFAULT_TIMEOUT
        remaining = max(0.0, timeout - (time.monotonic() - running.started))
        timed_out = False
        try:
            # Shield so a timeout here doesn't cancel the reader mid-stream
            await asyncio.wait_for(asyncio.shield(running.completion), timeout=remaining)
        except asyncio.TimeoutError:
            timed_out = True
            logger.warning(f"{handle.id} timed out after {timeout}s, killing process")
            self._kill(running)
            await running.completion
        except asyncio.CancelledError:
            # Caller stopped waiting; the process must not outlive the wait
            running.cancelled = True
            self._kill(running)
            raise
        finally:
            self._running.pop(handle.id, None)

        duration = time.monotonic() - running.started
        output = running.summary.get("result_text") or "".join(running.text_chunks)
        stderr_text = "".join(running.stderr_chunks)

        files, commits = await self._collect_changes(running)
        result = ExecutorResult(
            success=False,
            output=output,
            pr_url=find_pr_url(output),
            files_changed=files,
            commits=commits,
            duration=duration,
        )

        if timed_out:
            result.error = f"Timed out after {timeout:.0f} seconds"
        elif running.cancelled:
            result.error = "Cancelled"
        elif running.process.returncode != 0 or running.summary.get("is_error"):
            parts = [f"Exit code {running.process.returncode}"]
            if stderr_text.strip():
                parts.append(f"STDERR: {stderr_text.strip()[:1000]}")
            result.error = " | ".join(parts)
            logger.error(f"{handle.id} failed: {result.error}")
        else:
            result.success = True

        self._write_log(handle.id, output, stderr_text, result)
        return result

    async def cancel(self, handle: ExecutorHandle) -> bool:
        running = self._running.get(handle.id)
        if running is None or running.process.returncode is not None:
            return False
        running.cancelled = True
        self._kill(running)
        logger.info(f"Cancelled {handle.id}")
        return True

    @staticmethod
    def _kill(running: _RunningProcess) -> None:
        if running.process.returncode is None:
            try:
                running.process.kill()
            except ProcessLookupError:
                logger.debug("Process already exited before kill")

    async def _collect_changes(self, running: _RunningProcess) -> Tuple[List[str], List[GitCommit]]:
        if running.working_dir is None or running.base_sha is None:
            return [], []

        cwd = running.working_dir
        rc, log_output = await _git(
            cwd, "log", f"--format=%H{_LOG_SEP}%s{_LOG_SEP}%an{_LOG_SEP}%aI",
            "--name-only", f"{running.base_sha}..HEAD",
        )
        commits = parse_git_log(log_output) if rc == 0 else []

        _, diff_output = await _git(cwd, "diff", "--name-only", running.base_sha)
        files = [line.strip() for line in diff_output.splitlines() if line.strip()]
        for commit in commits:
            files.extend(commit.files)
        return list(dict.fromkeys(files)), commits

    def _write_log(self, handle_id: str, output: str, stderr_text: str, result: ExecutorResult) -> None:
        if self.logs_dir is None:
            return
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        log_path = self.logs_dir / f"claude-cli-{handle_id}.log"
        with open(log_path, "w") as f:
            f.write(f"=== {handle_id} ===\n")
            f.write(f"Finished: {time.strftime('%Y-%m-%d %H:%M:%S')}\n")
            f.write(f"Duration: {result.duration:.1f}s\n")
            f.write(f"Success: {result.success}\n")
            if result.error:
                f.write(f"Error: {result.error}\n")
            f.write("\n" + output)
            if stderr_text:
                f.write(f"\n\nSTDERR:\n{stderr_text}")


async def _git(cwd: Path, *args: str) -> Tuple[int, str]:
    """Run a git command, returning (returncode, stdout)."""
    process = await asyncio.create_subprocess_exec(
        "git", *args,
        cwd=str(cwd),
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await process.communicate()
    if process.returncode != 0:
        logger.debug(f"git {' '.join(args)} failed in {cwd}: {stderr.decode(errors='replace').strip()}")
    return process.returncode, stdout.decode(errors='replace')
