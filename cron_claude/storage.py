"""File-based task storage and execution log store.

Tasks are Markdown files with YAML front matter, one per task id. Logs are
one Markdown file per execution, named so a plain sort is chronological.
"""

import logging
import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union
from urllib.parse import quote

from pydantic import ValidationError

from cron_claude.errors import CronClaudeError, TaskParseError
from cron_claude.frontmatter import render_document, split_document
from cron_claude.models import TaskDefinition, TaskMetadata

logger = logging.getLogger(__name__)

TASK_SUFFIX = ".md"
LOG_SUFFIX = ".md"


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item["loc"]) or "document"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


def parse_task_document(content: str, source: str = "task document") -> TaskDefinition:
    """Validate a task document against the TaskDefinition schema."""
    header, body = split_document(content, source)
    try:
        return TaskDefinition(**header, instructions=body.strip())
    except ValidationError as e:
        raise TaskParseError(source, _format_validation_error(e)) from e
    except TypeError as e:
        # e.g. a header key that collides with "instructions"
        raise TaskParseError(source, str(e)) from e


def parse_task_file(path: Union[str, Path]) -> TaskDefinition:
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise TaskParseError(str(path), f"cannot read file: {e}") from e
    return parse_task_document(content, str(path))


def render_task_document(task: TaskDefinition) -> str:
    header = {
        "id": task.id,
        "schedule": task.schedule,
        "invocation": task.invocation.value,
        "notifications": {"toast": task.notifications.toast},
        "enabled": task.enabled,
    }
    return render_document(header, f"\n{task.instructions}\n")


def _atomic_write(path: Path, content: str) -> None:
    tmp_path = path.with_name(f".{path.name}.tmp")
    # newline="" keeps bytes identical to what was signed on every platform
    with open(tmp_path, "w", encoding="utf-8", newline="") as f:
        f.write(content)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp_path, path)


class FileTaskStorage:
    """Task definitions stored as <tasks_dir>/<id>.md."""

    def __init__(self, tasks_dir: Union[str, Path]):
        self.tasks_dir = Path(tasks_dir)
        self.tasks_dir.mkdir(parents=True, exist_ok=True)

    def get_task_file_path(self, task_id: str) -> Path:
        return self.tasks_dir / f"{task_id}{TASK_SUFFIX}"

    def exists(self, task_id: str) -> bool:
        return self.get_task_file_path(task_id).is_file()

    def get_task(self, task_id: str) -> Optional[TaskDefinition]:
        path = self.get_task_file_path(task_id)
        if not path.is_file():
            return None
        return parse_task_file(path)

    def create_task(self, task: TaskDefinition) -> Path:
        path = self.get_task_file_path(task.id)
        if path.exists():
            raise CronClaudeError(f'Task "{task.id}" already exists')
        _atomic_write(path, render_task_document(task))
        logger.info(f"Created task {task.id} at {path}")
        return path

    def update_task(self, task_id: str, task: TaskDefinition) -> None:
        path = self.get_task_file_path(task_id)
        if not path.is_file():
            raise CronClaudeError(f'Task "{task_id}" not found')
        _atomic_write(path, render_task_document(task))

    def delete_task(self, task_id: str) -> None:
        path = self.get_task_file_path(task_id)
        if not path.is_file():
            raise CronClaudeError(f'Task "{task_id}" not found')
        path.unlink()

    def list_tasks(self) -> List[TaskMetadata]:
        tasks = []
        for path in sorted(self.tasks_dir.glob(f"*{TASK_SUFFIX}")):
            try:
                task = parse_task_file(path)
            except TaskParseError as e:
                logger.warning(f"Skipping unparsable task file {path.name}: {e.reason}")
                continue
            tasks.append(
                TaskMetadata(
                    id=task.id,
                    schedule=task.schedule,
                    invocation=task.invocation,
                    enabled=task.enabled,
                )
            )
        return tasks


_LOG_NAME_TAIL = r"_\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-\d{3}Z_[^_]+" + re.escape(LOG_SUFFIX)


def log_file_task_part(task_id: str) -> str:
    """Filename-safe, reversible rendering of a task id (percent-encoding)."""
    return quote(task_id, safe="")


def sortable_timestamp(moment: Optional[datetime] = None) -> str:
    """ISO timestamp with ':' and '.' replaced so it is filename-safe."""
    moment = moment or datetime.now(timezone.utc)
    iso = moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"
    return iso.replace(":", "-").replace(".", "-")


class LogStore:
    """Signed log documents stored as {taskId}_{timestamp}_{executionId}.md."""

    def __init__(self, logs_dir: Union[str, Path]):
        self.logs_dir = Path(logs_dir)

    def log_filename(self, task_id: str, execution_id: str) -> str:
        return f"{log_file_task_part(task_id)}_{sortable_timestamp()}_{execution_id}{LOG_SUFFIX}"

    def save(self, document: str, task_id: str, execution_id: str) -> Path:
        self.logs_dir.mkdir(parents=True, exist_ok=True, mode=0o700)
        path = self.logs_dir / self.log_filename(task_id, execution_id)
        _atomic_write(path, document)
        return path

    def list_logs(self, task_id: Optional[str] = None) -> List[Path]:
        """Log files, oldest first, optionally only those of one task."""
        if not self.logs_dir.is_dir():
            return []
        paths = self.logs_dir.glob(f"*{LOG_SUFFIX}")
        if task_id is not None:
            name_pattern = re.compile(re.escape(log_file_task_part(task_id)) + _LOG_NAME_TAIL)
            paths = (p for p in paths if name_pattern.fullmatch(p.name))
        return sorted(paths, key=lambda p: p.name)

    def read(self, path: Union[str, Path]) -> str:
        with open(path, "r", encoding="utf-8", newline="") as f:
            return f.read()
