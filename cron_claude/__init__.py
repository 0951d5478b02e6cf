"""cron-claude - scheduled Claude tasks with signed execution logs.

Components:
    - settings: Typed configuration context
    - keys: Signing key lifecycle
    - audit: Execution log rendering, signing and verification
    - executor: CLI / API task execution
    - scheduler: Cron translation and native scheduler registration
    - storage: Task documents and the log store
"""

__version__ = "0.2.0"

from cron_claude.audit import AuditLogger, VerificationResult
from cron_claude.executor import TaskExecutor
from cron_claude.keys import SecretKeyManager
from cron_claude.models import (
    ExecutionLog,
    InvocationMode,
    LogStatus,
    LogStep,
    TaskDefinition,
)
from cron_claude.scheduler import SchedulerRegistrar, TaskStatus, translate
from cron_claude.settings import CronSettings, get_settings

__all__ = [
    "AuditLogger",
    "VerificationResult",
    "TaskExecutor",
    "SecretKeyManager",
    "ExecutionLog",
    "InvocationMode",
    "LogStatus",
    "LogStep",
    "TaskDefinition",
    "SchedulerRegistrar",
    "TaskStatus",
    "translate",
    "CronSettings",
    "get_settings",
]
