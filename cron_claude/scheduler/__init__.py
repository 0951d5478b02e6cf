"""Native OS scheduling for cron-claude tasks.

Components:
    - triggers: Schedule trigger variants
    - cron: Cron expression -> trigger translation
    - native: Adapter base class and shared command plumbing
    - platform: Per-OS adapter selection (Task Scheduler / crontab)
    - locks: Per-task execution lock files
    - registrar: Register/unregister/enable/disable/status with elevation fallback
"""

from cron_claude.scheduler.cron import translate
from cron_claude.scheduler.registrar import SchedulerRegistrar, TaskStatus
from cron_claude.scheduler.triggers import (
    DailyTrigger,
    MonthlyTrigger,
    OnceTrigger,
    ScheduleTrigger,
    StartupTrigger,
    TriggerType,
    WeeklyTrigger,
)

__all__ = [
    "translate",
    "SchedulerRegistrar",
    "TaskStatus",
    "ScheduleTrigger",
    "TriggerType",
    "DailyTrigger",
    "WeeklyTrigger",
    "MonthlyTrigger",
    "OnceTrigger",
    "StartupTrigger",
]
