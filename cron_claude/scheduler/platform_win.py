"""Windows support: Task Scheduler adapter and process helpers.

Tasks are registered from Task Scheduler XML so every trigger variant
(including monthly day-of-month sets) maps onto one code path. PowerShell
scripts are passed with -EncodedCommand to avoid quoting trouble.
"""

import base64
import ctypes
import getpass
import json
import logging
from datetime import date
from typing import List, Optional
from xml.etree import ElementTree as ET

from cron_claude.errors import NativeSchedulerError
from cron_claude.scheduler.native import (
    NativeAction,
    NativeScheduler,
    NativeTaskInfo,
    normalize_run_time,
)
from cron_claude.scheduler.triggers import (
    DailyTrigger,
    MonthlyTrigger,
    OnceTrigger,
    ScheduleTrigger,
    StartupTrigger,
    WeeklyTrigger,
)

logger = logging.getLogger(__name__)

TASK_XML_NAMESPACE = "http://schemas.microsoft.com/windows/2004/02/mit/task"
POWERSHELL = "powershell.exe"

_DAY_ELEMENTS = {
    "SUN": "Sunday",
    "MON": "Monday",
    "TUE": "Tuesday",
    "WED": "Wednesday",
    "THU": "Thursday",
    "FRI": "Friday",
    "SAT": "Saturday",
}
_MONTH_ELEMENTS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


def is_process_running(pid: int) -> bool:
    """Check if a process with the given PID is running."""
    try:
        kernel32 = ctypes.windll.kernel32
        handle = kernel32.OpenProcess(
            0x1000, False, pid
        )  # PROCESS_QUERY_LIMITED_INFORMATION
        if handle:
            kernel32.CloseHandle(handle)
            return True
        return False
    except (AttributeError, OSError):
        return False


def ps_quote(value: str) -> str:
    """Single-quoted PowerShell string literal."""
    return "'" + value.replace("'", "''") + "'"


def powershell_args(script: str) -> List[str]:
    encoded = base64.b64encode(script.encode("utf-16-le")).decode("ascii")
    return [
        POWERSHELL,
        "-NoProfile",
        "-NonInteractive",
        "-ExecutionPolicy",
        "Bypass",
        "-EncodedCommand",
        encoded,
    ]


def _sub(parent: ET.Element, tag: str, text: Optional[str] = None) -> ET.Element:
    element = ET.SubElement(parent, tag)
    if text is not None:
        element.text = text
    return element


def _add_trigger(triggers: ET.Element, trigger: ScheduleTrigger, start_date: date) -> None:
    if isinstance(trigger, StartupTrigger):
        boot = _sub(triggers, "BootTrigger")
        _sub(boot, "Enabled", "true")
        return

    if isinstance(trigger, OnceTrigger):
        run_date = trigger.date or start_date.isoformat()
        once = _sub(triggers, "TimeTrigger")
        _sub(once, "StartBoundary", f"{run_date}T{trigger.time}:00")
        _sub(once, "Enabled", "true")
        return

    calendar = _sub(triggers, "CalendarTrigger")
    _sub(calendar, "StartBoundary", f"{start_date.isoformat()}T{trigger.time}:00")
    _sub(calendar, "Enabled", "true")

    if isinstance(trigger, WeeklyTrigger):
        by_week = _sub(calendar, "ScheduleByWeek")
        days = _sub(by_week, "DaysOfWeek")
        for code in trigger.days:
            _sub(days, _DAY_ELEMENTS[code])
        _sub(by_week, "WeeksInterval", "1")
    elif isinstance(trigger, MonthlyTrigger):
        by_month = _sub(calendar, "ScheduleByMonth")
        days = _sub(by_month, "DaysOfMonth")
        for day in trigger.days_of_month:
            _sub(days, "Day", str(day))
        months = _sub(by_month, "Months")
        for month in _MONTH_ELEMENTS:
            _sub(months, month)
    elif isinstance(trigger, DailyTrigger):
        by_day = _sub(calendar, "ScheduleByDay")
        _sub(by_day, "DaysInterval", "1")
    else:
        raise ValueError(f"Unsupported trigger type: {trigger!r}")


def build_task_xml(
    action: NativeAction,
    trigger: ScheduleTrigger,
    user_id: str,
    description: str = "",
    start_date: Optional[date] = None,
) -> str:
    """Task Scheduler 1.2 XML for one trigger and one exec action."""
    start_date = start_date or date.today()

    task = ET.Element("Task", {"version": "1.2", "xmlns": TASK_XML_NAMESPACE})
    info = _sub(task, "RegistrationInfo")
    _sub(info, "Description", description or "Scheduled by cron-claude")

    triggers = _sub(task, "Triggers")
    _add_trigger(triggers, trigger, start_date)

    principal = _sub(_sub(task, "Principals"), "Principal", None)
    principal.set("id", "Author")
    _sub(principal, "UserId", user_id)
    _sub(principal, "LogonType", "S4U")
    _sub(principal, "RunLevel", "LeastPrivilege")

    settings = _sub(task, "Settings")
    _sub(settings, "MultipleInstancesPolicy", "IgnoreNew")
    _sub(settings, "DisallowStartIfOnBatteries", "false")
    _sub(settings, "StopIfGoingOnBatteries", "false")
    _sub(settings, "StartWhenAvailable", "true")
    _sub(settings, "Enabled", "true")
    _sub(settings, "ExecutionTimeLimit", "PT1H")

    actions = _sub(task, "Actions")
    actions.set("Context", "Author")
    exec_action = _sub(actions, "Exec")
    _sub(exec_action, "Command", action.executable)
    if action.arguments:
        _sub(exec_action, "Arguments", action.windows_arguments())
    if action.working_directory:
        _sub(exec_action, "WorkingDirectory", action.working_directory)

    return ET.tostring(task, encoding="unicode")


class WindowsTaskScheduler(NativeScheduler):
    """Windows Task Scheduler through the ScheduledTasks PowerShell module."""

    script_suffix = ".ps1"
    # Windows PowerShell 5.1 needs the BOM to read UTF-8 scripts
    script_encoding = "utf-8-sig"

    def __init__(self, runner=None, user_id: Optional[str] = None):
        super().__init__(runner)
        self.user_id = user_id or getpass.getuser()

    def build_registration_script(
        self, name: str, action: NativeAction, trigger: ScheduleTrigger
    ) -> str:
        xml = build_task_xml(action, trigger, self.user_id, description=f"cron-claude task {name}")
        return (
            "$ErrorActionPreference = 'Stop'\n"
            f"$taskName = {ps_quote(name)}\n"
            "$xml = @'\n"
            f"{xml}\n"
            "'@\n"
            "Register-ScheduledTask -TaskName $taskName -Xml $xml -Force | Out-Null\n"
            'Write-Output "Task registered: $taskName"\n'
        )

    def apply_script(self, script: str) -> None:
        self._run(powershell_args(script), what="Register-ScheduledTask")

    def elevated_command(self, script_path: str) -> List[str]:
        inner_args = ", ".join(
            ps_quote(arg)
            for arg in ("-NoProfile", "-ExecutionPolicy", "Bypass", "-File", f'"{script_path}"')
        )
        script = (
            "$ErrorActionPreference = 'Stop'\n"
            f"$p = Start-Process -FilePath {ps_quote(POWERSHELL)} -Verb RunAs -Wait -PassThru "
            f"-WindowStyle Hidden -ArgumentList {inner_args}\n"
            "exit $p.ExitCode\n"
        )
        return powershell_args(script)

    def query(self, name: str) -> Optional[NativeTaskInfo]:
        script = (
            f"$t = Get-ScheduledTask -TaskName {ps_quote(name)} -ErrorAction SilentlyContinue\n"
            "if ($null -eq $t) { Write-Output 'null'; exit 0 }\n"
            f"$i = Get-ScheduledTaskInfo -TaskName {ps_quote(name)}\n"
            "[pscustomobject]@{\n"
            "  State = [string]$t.State\n"
            "  LastRunTime = if ($i.LastRunTime) { $i.LastRunTime.ToString('o') } else { $null }\n"
            "  NextRunTime = if ($i.NextRunTime) { $i.NextRunTime.ToString('o') } else { $null }\n"
            "} | ConvertTo-Json -Compress\n"
        )
        output = self._run(powershell_args(script), what="Get-ScheduledTask").strip()
        if not output or output == "null":
            return None
        try:
            data = json.loads(output)
        except ValueError as e:
            raise NativeSchedulerError(f"Unexpected Get-ScheduledTask output: {output[:200]}") from e
        return NativeTaskInfo(
            name=name,
            enabled=str(data.get("State", "")).lower() != "disabled",
            last_run=normalize_run_time(data.get("LastRunTime")),
            next_run=normalize_run_time(data.get("NextRunTime")),
        )

    def delete(self, name: str) -> None:
        script = (
            f"Unregister-ScheduledTask -TaskName {ps_quote(name)} "
            "-Confirm:$false -ErrorAction Stop\n"
        )
        self._run(powershell_args(script), what="Unregister-ScheduledTask")

    def set_enabled(self, name: str, enabled: bool) -> None:
        verb = "Enable" if enabled else "Disable"
        script = f"{verb}-ScheduledTask -TaskName {ps_quote(name)} -ErrorAction Stop | Out-Null\n"
        self._run(powershell_args(script), what=f"{verb}-ScheduledTask")
