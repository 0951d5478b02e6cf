"""Unix/macOS support: user crontab adapter and process helpers.

Each task owns exactly one crontab line tagged with a trailing marker
comment. Disabled tasks keep their line, commented out with a fixed prefix,
so enable/disable round-trip without re-translating the schedule.
"""

import getpass
import logging
import os
import shlex
from datetime import datetime
from typing import List, Optional, Tuple

from croniter import croniter

from cron_claude.errors import NativeSchedulerError
from cron_claude.scheduler.native import (
    NativeAction,
    NativeScheduler,
    NativeTaskInfo,
    is_permission_denied,
)
from cron_claude.scheduler.triggers import (
    WEEKDAY_CODES,
    DailyTrigger,
    MonthlyTrigger,
    OnceTrigger,
    ScheduleTrigger,
    StartupTrigger,
    WeeklyTrigger,
)

logger = logging.getLogger(__name__)

MARKER_PREFIX = "# cron-claude:"
DISABLED_PREFIX = "#DISABLED# "


def is_process_running(pid: int) -> bool:
    """Check if a process with the given PID is running."""
    try:
        os.kill(pid, 0)
        return True
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, but owned by someone else
        return True


def trigger_schedule(trigger: ScheduleTrigger) -> str:
    """Cron schedule fields (or @reboot) for a trigger variant."""
    if isinstance(trigger, StartupTrigger):
        return "@reboot"
    if isinstance(trigger, OnceTrigger):
        raise NativeSchedulerError("One-time triggers are not supported by crontab")

    prefix = f"{trigger.minute} {trigger.hour}"
    if isinstance(trigger, WeeklyTrigger):
        days = ",".join(str(WEEKDAY_CODES.index(code)) for code in trigger.days)
        return f"{prefix} * * {days}"
    if isinstance(trigger, MonthlyTrigger):
        days = ",".join(str(day) for day in trigger.days_of_month)
        return f"{prefix} {days} * *"
    if isinstance(trigger, DailyTrigger):
        return f"{prefix} * * *"
    raise NativeSchedulerError(f"Unsupported trigger type: {trigger!r}")


def _marker(name: str) -> str:
    return f"{MARKER_PREFIX}{name}"


def _owns_line(line: str, name: str) -> bool:
    return line.rstrip().endswith(_marker(name))


def _split_entry(line: str) -> Tuple[bool, str]:
    """(enabled, schedule) for one of our lines."""
    enabled = not line.startswith(DISABLED_PREFIX)
    body = line[len(DISABLED_PREFIX):] if not enabled else line
    if body.startswith("@"):
        return enabled, body.split(None, 1)[0]
    return enabled, " ".join(body.split()[:5])


# Drops our line from a crontab listing; the marker is matched as a suffix
# so CronClaude_a never removes CronClaude_ab.
_AWK_DROP_OWNED = (
    '{ s = $0; sub(/[ \\t]+$/, "", s); '
    "if (length(s) < length(m) || substr(s, length(s) - length(m) + 1) != m) print }"
)


class CrontabScheduler(NativeScheduler):
    """The invoking user's crontab, edited through `crontab -l` / `crontab -`.

    Elevation runs a small shell script through sudo that reads, filters and
    reinstalls the user's crontab as root, so it works even when the user
    cannot list their own crontab (cron.allow / cron.deny).
    """

    script_suffix = ".sh"

    def __init__(self, runner=None, user: Optional[str] = None):
        super().__init__(runner)
        self.user = user or getpass.getuser()

    def _list(self, args: List[str]) -> List[str]:
        try:
            result = self.runner(args, input_text=None)
        except FileNotFoundError as e:
            raise NativeSchedulerError(f"{args[0]} not available: {e}") from e
        if result.returncode != 0:
            message = (result.stderr or "").strip()
            if "no crontab" in message.lower():
                return []
            raise NativeSchedulerError(
                f"{' '.join(args)} failed: {message or 'no output'}",
                returncode=result.returncode,
                stderr=message,
            )
        return (result.stdout or "").splitlines()

    def read_lines(self) -> List[str]:
        return self._list(["crontab", "-l"])

    def read_lines_privileged(self) -> List[str]:
        """Listing through sudo; -n never prompts, so it only works with cached credentials."""
        return self._list(["sudo", "-n", "crontab", "-u", self.user, "-l"])

    def _write_lines(self, lines: List[str]) -> None:
        self.apply_script("\n".join(lines) + "\n")

    @staticmethod
    def entry_line(name: str, action: NativeAction, trigger: ScheduleTrigger) -> str:
        # cron treats a bare % as a newline
        command = action.command_line().replace("%", "\\%")
        return f"{trigger_schedule(trigger)} {command} {_marker(name)}"

    def build_registration_script(
        self, name: str, action: NativeAction, trigger: ScheduleTrigger
    ) -> str:
        entry = self.entry_line(name, action, trigger)
        lines = [line for line in self.read_lines() if not _owns_line(line, name)]
        lines.append(entry)
        return "\n".join(lines) + "\n"

    def build_elevated_script(
        self, name: str, action: NativeAction, trigger: ScheduleTrigger
    ) -> str:
        entry = self.entry_line(name, action, trigger)
        user = shlex.quote(self.user)
        return (
            "#!/bin/sh\n"
            "set -e\n"
            f"marker={shlex.quote(_marker(name))}\n"
            f"entry={shlex.quote(entry)}\n"
            "{\n"
            f"  {{ crontab -u {user} -l 2>/dev/null || true; }}"
            f" | awk -v m=\"$marker\" {shlex.quote(_AWK_DROP_OWNED)}\n"
            "  printf '%s\\n' \"$entry\"\n"
            f"}} | crontab -u {user} -\n"
        )

    def apply_script(self, script: str) -> None:
        self._run(["crontab", "-"], input_text=script, what="crontab install")

    def elevated_command(self, script_path: str) -> List[str]:
        return ["sudo", "sh", script_path]

    def _find(self, lines: List[str], name: str) -> Optional[int]:
        for index, line in enumerate(lines):
            if _owns_line(line, name):
                return index
        return None

    def query(self, name: str) -> Optional[NativeTaskInfo]:
        try:
            lines = self.read_lines()
        except NativeSchedulerError as e:
            if not is_permission_denied(e):
                raise
            lines = self.read_lines_privileged()
        index = self._find(lines, name)
        if index is None:
            return None
        enabled, schedule = _split_entry(lines[index])
        next_run = None
        if enabled and not schedule.startswith("@") and croniter.is_valid(schedule):
            next_run = croniter(schedule, datetime.now()).get_next(datetime).isoformat()
        # cron keeps no run history
        return NativeTaskInfo(name=name, enabled=enabled, last_run=None, next_run=next_run)

    def delete(self, name: str) -> None:
        lines = self.read_lines()
        index = self._find(lines, name)
        if index is None:
            raise NativeSchedulerError(f"No crontab entry for {name}")
        del lines[index]
        self._write_lines(lines)

    def set_enabled(self, name: str, enabled: bool) -> None:
        lines = self.read_lines()
        index = self._find(lines, name)
        if index is None:
            raise NativeSchedulerError(f"No crontab entry for {name}")
        line = lines[index]
        is_enabled = not line.startswith(DISABLED_PREFIX)
        if is_enabled == enabled:
            return
        lines[index] = line[len(DISABLED_PREFIX):] if enabled else DISABLED_PREFIX + line
        self._write_lines(lines)
