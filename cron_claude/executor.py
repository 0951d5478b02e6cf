"""Task executor for cron-claude.

Runs one task definition through the CLI tool or the Messages API and leaves
exactly one signed execution log behind, whatever happens: disabled tasks,
spawn failures, timeouts and API errors all end in a finalized record.
Nothing raised while running a task escapes execute().

Invoked by the native scheduler as:

    python -m cron_claude <task-file> [<cli-tool-path>]
"""

import json
import logging
import os
import shutil
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import httpx
import logfire

from cron_claude.audit import AuditLogger
from cron_claude.errors import (
    APIRequestError,
    CredentialMissingError,
    ExecutionTimeoutError,
    ProcessSpawnError,
    TaskParseError,
)
from cron_claude.models import ExecutionLog, InvocationMode, TaskDefinition
from cron_claude.notifier import LoggingNotifier, Notifier, notify_safely
from cron_claude.scheduler.locks import ExecutionLocks
from cron_claude.settings import CronSettings, get_settings
from cron_claude.storage import parse_task_file
from cron_claude.telemetry import configure_telemetry

logger = logging.getLogger(__name__)

API_KEY_VARIABLE = "ANTHROPIC_API_KEY"
INSTRUCTIONS_PLACEHOLDER = "{instructions_file}"
# Non-interactive print mode; no permission prompts; exits when done
DEFAULT_CLI_ARGUMENTS = (
    "--dangerously-skip-permissions",
    "-p",
    "Read the task instructions in {instructions_file} and carry them out.",
)
TERMINATE_GRACE_SECONDS = 5

Outcome = Tuple[bool, Optional[str]]


class TaskExecutor:
    def __init__(
        self,
        settings: CronSettings,
        audit: Optional[AuditLogger] = None,
        notifier: Optional[Notifier] = None,
        http_client: Optional[httpx.Client] = None,
        cli_path: Optional[str] = None,
        cli_arguments: Sequence[str] = DEFAULT_CLI_ARGUMENTS,
    ):
        self.settings = settings
        self.audit = audit or AuditLogger(settings)
        self.notifier = notifier or LoggingNotifier()
        self.http_client = http_client
        self.cli_path = cli_path
        self.cli_arguments = tuple(cli_arguments)
        self.locks = ExecutionLocks(settings.locks_dir)

    def execute(self, task: TaskDefinition) -> ExecutionLog:
        """Run the task and return its finalized log."""
        log = self.audit.create_log(task.id)
        success, error = False, None

        with logfire.span(
            "execute task {task_id}", task_id=task.id, invocation=task.invocation.value
        ):
            try:
                with self.locks.held(task.id):
                    success, error = self._dispatch(task, log)
            except Exception as e:
                logger.exception(f"Execution of task {task.id} failed during setup")
                error = f"{type(e).__name__}: {e}"
                self.audit.add_step(log, "Execution setup failed", error=error)
                success = False

            try:
                self.audit.finalize(log, success)
            except Exception as e:
                logger.error(f"Could not persist execution log {log.execution_id}: {e}")

        if task.notifications.toast:
            title = f"Task {task.id} {'completed' if success else 'failed'}"
            message = (
                "Task executed successfully"
                if success
                else f"Task failed: {error or 'Unknown error'}"
            )
            notify_safely(self.notifier, title, message, success)

        return log

    def _dispatch(self, task: TaskDefinition, log: ExecutionLog) -> Outcome:
        if not task.enabled:
            self.audit.add_step(log, "Task skipped - disabled")
            return False, "Task is disabled"

        self.audit.add_step(
            log,
            "Task execution started",
            f"Task: {task.id}, Method: {task.invocation.value}",
        )
        if task.invocation is InvocationMode.CLI:
            return self._execute_via_cli(task, log)
        if task.invocation is InvocationMode.API:
            return self._execute_via_api(task, log)

        error = f"Unknown method: {task.invocation}"
        self.audit.add_step(log, "Invalid invocation method", error=error)
        return False, error

    # CLI

    def resolve_cli_command(self) -> str:
        """Explicit path argument, then the configured command (PATH lookup)."""
        if self.cli_path:
            return self.cli_path
        command = self.settings.cli_command
        return shutil.which(command) or command

    def build_cli_command(self, instructions_path: str) -> List[str]:
        args = [arg.replace(INSTRUCTIONS_PLACEHOLDER, instructions_path) for arg in self.cli_arguments]
        return [self.resolve_cli_command(), *args]

    def _execute_via_cli(self, task: TaskDefinition, log: ExecutionLog) -> Outcome:
        self.audit.add_step(log, "Starting CLI execution")
        fd, temp_path = tempfile.mkstemp(prefix=f"cron-claude-task-{task.id}-", suffix=".md")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(task.instructions)
            self.audit.add_step(log, "Created temporary task file", temp_path)
            return self._run_cli(self.build_cli_command(temp_path), log)
        finally:
            try:
                os.unlink(temp_path)
                self.audit.add_step(log, "Cleaned up temporary file")
            except OSError as e:
                self.audit.add_step(
                    log, "Warning: Could not clean up temp file", error=str(e)
                )

    def _run_cli(self, command: List[str], log: ExecutionLog) -> Outcome:
        timeout = self.settings.cli_timeout_seconds
        self.audit.add_step(log, "Spawning CLI process", f"Using: {command[0]}")

        try:
            # stdout/stderr inherited so output lands wherever the run is watched
            process = subprocess.Popen(command, stdin=subprocess.DEVNULL, shell=False)
        except OSError as e:
            error = str(ProcessSpawnError(f"Failed to start {command[0]}: {e}"))
            self.audit.add_step(log, "CLI execution error", error=error)
            return False, error

        try:
            exit_code = process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            self._stop(process)
            error = str(ExecutionTimeoutError(timeout))
            self.audit.add_step(log, "CLI execution timed out", error=error)
            return False, error

        if exit_code == 0:
            self.audit.add_step(log, "CLI execution completed successfully", "Exit code: 0")
            return True, None

        error = f"Process exited with code {exit_code}"
        self.audit.add_step(log, "CLI execution failed", error=error)
        return False, error

    @staticmethod
    def _stop(process: subprocess.Popen) -> None:
        process.terminate()
        try:
            process.wait(timeout=TERMINATE_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()

    # API

    def _execute_via_api(self, task: TaskDefinition, log: ExecutionLog) -> Outcome:
        self.audit.add_step(log, "Starting API execution")

        api_key = self.settings.get_api_key()
        if not api_key:
            error = str(CredentialMissingError(API_KEY_VARIABLE))
            self.audit.add_step(log, "API execution failed", error=error)
            return False, error

        self.audit.add_step(log, "API key found, making request")
        try:
            output = self.request_completion(task.instructions, api_key)
        except APIRequestError as e:
            self.audit.add_step(log, "API execution failed", error=str(e))
            return False, str(e)

        self.audit.add_step(log, "API request completed", output)
        return True, None

    def request_completion(self, prompt: str, api_key: str) -> str:
        """One synchronous Messages API call; returns the first text block."""
        payload = {
            "model": self.settings.api_model,
            "max_tokens": self.settings.api_max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        headers = {
            "content-type": "application/json",
            "x-api-key": api_key,
            "anthropic-version": self.settings.api_version,
        }

        client = self.http_client or httpx.Client(timeout=self.settings.api_timeout_seconds)
        try:
            response = client.post(self.settings.api_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise APIRequestError(None, str(e)) from e
        finally:
            if self.http_client is None:
                client.close()

        if not response.is_success:
            raise APIRequestError(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as e:
            raise APIRequestError(response.status_code, f"invalid JSON body: {e}") from e

        for block in data.get("content") or []:
            if isinstance(block, dict) and block.get("type") == "text":
                return block.get("text", "")
        return json.dumps(data)


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point used by the native scheduler."""
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        sys.stderr.write("Usage: python -m cron_claude <task-file-path> [cli-path]\n")
        return 2

    configure_telemetry()
    settings = get_settings()
    task_file = argv[0]
    cli_path = argv[1] if len(argv) > 1 else None

    try:
        task = parse_task_file(task_file)
    except TaskParseError as e:
        logger.error(str(e))
        # Still leave a signed trace for the fire that could not run
        audit = AuditLogger(settings)
        log = audit.create_log(Path(task_file).stem)
        audit.add_step(log, "Task definition could not be loaded", error=str(e))
        try:
            audit.finalize(log, False)
        except Exception as write_error:
            logger.error(f"Could not persist execution log {log.execution_id}: {write_error}")
        return 1

    TaskExecutor(settings, cli_path=cli_path).execute(task)
    return 0
