"""Core data types: task definitions and execution logs."""

from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class InvocationMode(str, Enum):
    """Execution backend for a task body."""

    CLI = "cli"
    API = "api"


class LogStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    FAILURE = "failure"


class NotificationSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    toast: bool = False


class TaskDefinition(BaseModel):
    """A scheduled task as stored in its Markdown document.

    `id` and `schedule` are required; everything else has a default.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str = Field(min_length=1)
    schedule: str = Field(min_length=1)
    invocation: InvocationMode = InvocationMode.CLI
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    enabled: bool = True
    instructions: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def _numeric_id_as_string(cls, value):
        # `id: 42` in YAML arrives as an int
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("id")
    @classmethod
    def _id_is_filename_safe(cls, value: str) -> str:
        value = value.strip()
        if not value or any(ch in value for ch in '/\\:*?"<>|') or value in (".", ".."):
            raise ValueError(f"task id {value!r} must be a non-empty filename-safe string")
        return value

    @field_validator("schedule")
    @classmethod
    def _strip_schedule(cls, value: str) -> str:
        return value.strip()


class TaskMetadata(BaseModel):
    """Listing view of a task (no instructions)."""

    id: str
    schedule: str
    invocation: InvocationMode
    enabled: bool


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def new_execution_id() -> str:
    """exec-<epoch ms>-<9 random chars>; sorts by creation time."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"exec-{int(time.time() * 1000)}-{suffix}"


@dataclass
class LogStep:
    action: str
    timestamp: str = field(default_factory=utc_now_iso)
    output: Optional[str] = None
    error: Optional[str] = None


@dataclass
class ExecutionLog:
    """In-memory record of one execution attempt.

    Steps are only ever appended. `status` leaves RUNNING exactly once, in
    AuditLogger.finalize, which also sets `signature`.
    """

    task_id: str
    execution_id: str = field(default_factory=new_execution_id)
    timestamp: str = field(default_factory=utc_now_iso)
    status: LogStatus = LogStatus.RUNNING
    steps: List[LogStep] = field(default_factory=list)
    signature: Optional[str] = None

    @property
    def is_final(self) -> bool:
        return self.status is not LogStatus.RUNNING


class LogHeader(BaseModel):
    """Front-matter header of a persisted log document."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    category: str = "cron-task"
    task_id: str = Field(alias="taskId", min_length=1)
    execution_id: str = Field(alias="executionId", min_length=1)
    timestamp: str
    status: LogStatus
    signature: Optional[str] = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def _timestamp_as_string(cls, value):
        # YAML turns unquoted ISO timestamps into datetimes
        if isinstance(value, datetime):
            return value.isoformat().replace("+00:00", "Z")
        return value
