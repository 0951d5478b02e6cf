"""Exception hierarchy for cron-claude.

Registration-path errors propagate to the caller. Execution-path errors are
caught by the executor and recorded as failed steps, so they only ever show
up inside a signed log.
"""

from typing import Optional


class CronClaudeError(Exception):
    """Base class for all cron-claude errors."""


class InvalidScheduleError(CronClaudeError, ValueError):
    """A cron expression is malformed or unsupported."""

    def __init__(self, expression: str, reason: str = "invalid cron expression"):
        self.expression = expression
        self.reason = reason
        super().__init__(f"{reason}: {expression!r}")


class TaskParseError(CronClaudeError, ValueError):
    """A task or log document could not be parsed into its schema."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Failed to parse {source}: {reason}")


class NativeSchedulerError(CronClaudeError):
    """The native OS scheduler rejected a command."""

    def __init__(
        self,
        message: str,
        returncode: Optional[int] = None,
        stderr: str = "",
    ):
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)

    def diagnostic_text(self) -> str:
        """Everything the scheduler said, for permission-denied matching."""
        parts = [str(self), self.stderr]
        if self.returncode is not None:
            parts.append(f"exit code {self.returncode}")
        return "\n".join(p for p in parts if p)


class RegistrationError(CronClaudeError):
    """Registration failed even after the elevation fallback."""


class ExecutionInProgressError(RegistrationError):
    """A task cannot be re-registered while one of its executions is running."""

    def __init__(self, task_id: str, pid: int):
        self.task_id = task_id
        self.pid = pid
        super().__init__(
            f"Task '{task_id}' is currently executing (PID {pid}); "
            "retry registration after it finishes"
        )


class ExecutionError(CronClaudeError):
    """Base for errors raised while running a task body."""


class ExecutionTimeoutError(ExecutionError):
    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Process exceeded {timeout_seconds:g}s timeout and was terminated")


class ProcessSpawnError(ExecutionError):
    pass


class APIRequestError(ExecutionError):
    def __init__(self, status_code: Optional[int], body: str):
        self.status_code = status_code
        self.body = body
        if status_code is None:
            super().__init__(f"API request failed: {body}")
        else:
            super().__init__(f"API request failed: {status_code} {body}")


class CredentialMissingError(ExecutionError):
    def __init__(self, variable: str):
        self.variable = variable
        super().__init__(f"{variable} environment variable not set")


class SignatureError(CronClaudeError):
    """Base for verification-only failures; never raised during execution."""


class SignatureAbsentError(SignatureError):
    def __init__(self):
        super().__init__("No signature present in log document")


class SignatureMismatchError(SignatureError):
    def __init__(self):
        super().__init__("Signature verification failed: log content has been modified")
