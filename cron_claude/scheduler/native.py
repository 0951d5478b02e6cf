"""Shared plumbing for native OS scheduler adapters.

Each platform adapter turns a trigger variant plus an action into a
self-contained registration script, and knows how to apply that script
directly or through an elevation request. Commands go through an injectable
runner so adapters can be exercised without shelling out.
"""

import logging
import shlex
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from cron_claude.errors import NativeSchedulerError
from cron_claude.scheduler.triggers import ScheduleTrigger

logger = logging.getLogger(__name__)

DEFAULT_COMMAND_TIMEOUT = 120

# Lowercased substrings that identify "you need to be admin/root" failures
PERMISSION_DENIED_SIGNATURES = (
    "access is denied",
    "access denied",
    "0x80070005",
    "-2147024891",
    "e_accessdenied",
    "permissiondenied",
    "unauthorizedaccessexception",
    "permission denied",
    "operation not permitted",
    "not allowed to use this program",
    "eacces",
)

# Task Scheduler reports this LastRunTime for tasks that never ran
NEVER_RUN_SENTINELS = ("1999-11-30", "0001-01-01")

Runner = Callable[..., subprocess.CompletedProcess]


def run_command(
    args: List[str],
    input_text: Optional[str] = None,
    timeout: float = DEFAULT_COMMAND_TIMEOUT,
) -> subprocess.CompletedProcess:
    """Run a command, capturing text output. Never raises on exit status."""
    logger.debug(f"Running native scheduler command: {args[0]}")
    return subprocess.run(
        args,
        input=input_text,
        capture_output=True,
        text=True,
        timeout=timeout,
        shell=False,
    )


def is_permission_denied(error: NativeSchedulerError) -> bool:
    text = error.diagnostic_text().lower()
    return any(signature in text for signature in PERMISSION_DENIED_SIGNATURES)


def normalize_run_time(value: Optional[str]) -> Optional[str]:
    """Map empty values and "never ran" sentinels to None."""
    if value is None:
        return None
    value = str(value).strip()
    if not value or value.startswith(NEVER_RUN_SENTINELS):
        return None
    return value


@dataclass(frozen=True)
class NativeAction:
    """What the native trigger runs: executable, arguments, working directory."""

    executable: str
    arguments: List[str] = field(default_factory=list)
    working_directory: str = ""

    def command_line(self) -> str:
        """POSIX shell rendering, used by crontab."""
        command = shlex.join([self.executable, *self.arguments])
        if self.working_directory:
            return f"cd {shlex.quote(self.working_directory)} && {command}"
        return command

    def windows_arguments(self) -> str:
        """Arguments rendered for a Windows command line."""
        return subprocess.list2cmdline(self.arguments)


@dataclass
class NativeTaskInfo:
    name: str
    enabled: bool
    last_run: Optional[str] = None
    next_run: Optional[str] = None


class NativeScheduler(ABC):
    """Adapter between trigger variants and one OS scheduler."""

    # Suffix and encoding for the temporary script used by the elevation flow
    script_suffix = ".txt"
    script_encoding = "utf-8"

    def __init__(self, runner: Optional[Runner] = None):
        self.runner = runner or run_command

    def _run(self, args: List[str], input_text: Optional[str] = None, what: str = "command") -> str:
        """Run through the runner and raise NativeSchedulerError on failure."""
        try:
            result = self.runner(args, input_text=input_text)
        except FileNotFoundError as e:
            raise NativeSchedulerError(f"{what} failed: {args[0]} not found ({e})") from e
        except subprocess.TimeoutExpired as e:
            raise NativeSchedulerError(f"{what} timed out after {e.timeout}s") from e

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            stdout = (result.stdout or "").strip()
            raise NativeSchedulerError(
                f"{what} failed: {stderr or stdout or 'no output'}",
                returncode=result.returncode,
                stderr="\n".join(p for p in (stderr, stdout) if p),
            )
        return result.stdout or ""

    @abstractmethod
    def build_registration_script(
        self, name: str, action: NativeAction, trigger: ScheduleTrigger
    ) -> str:
        """Self-contained script that installs (or replaces) the named task."""

    @abstractmethod
    def apply_script(self, script: str) -> None:
        """Run a registration script with the caller's privileges."""

    def build_elevated_script(
        self, name: str, action: NativeAction, trigger: ScheduleTrigger
    ) -> str:
        """Script for the elevation request; must not need the caller's privileges to build."""
        return self.build_registration_script(name, action, trigger)

    @abstractmethod
    def elevated_command(self, script_path: str) -> List[str]:
        """Command that runs a saved script with escalated privileges and waits."""

    def apply_elevated(self, script_path: str) -> None:
        self._run(self.elevated_command(script_path), what="elevated registration")

    @abstractmethod
    def query(self, name: str) -> Optional[NativeTaskInfo]:
        """Current native state, or None when no such task exists."""

    @abstractmethod
    def delete(self, name: str) -> None:
        pass

    @abstractmethod
    def set_enabled(self, name: str, enabled: bool) -> None:
        pass
