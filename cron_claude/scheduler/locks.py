"""Per-task execution lock files.

An execution writes its PID to <locks_dir>/<task_id>.lock for as long as it
runs. The registrar refuses to re-register a task while a live lock exists.
Locks whose PID is gone are stale and get removed on sight.
"""

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

from cron_claude.scheduler.platform import is_process_running

logger = logging.getLogger(__name__)


class ExecutionLocks:
    def __init__(self, locks_dir: Union[str, Path]):
        self.locks_dir = Path(locks_dir)

    def lock_path(self, task_id: str) -> Path:
        return self.locks_dir / f"{task_id}.lock"

    def _read_pid(self, path: Path) -> Optional[int]:
        try:
            return int(path.read_text(encoding="utf-8").strip())
        except (OSError, ValueError):
            return None

    def active_pid(self, task_id: str) -> Optional[int]:
        """PID of a running execution of this task, clearing stale locks."""
        path = self.lock_path(task_id)
        if not path.exists():
            return None
        pid = self._read_pid(path)
        if pid is not None and is_process_running(pid):
            return pid
        logger.info(f"Removing stale execution lock for task {task_id}")
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        return None

    def acquire(self, task_id: str) -> Path:
        self.locks_dir.mkdir(parents=True, exist_ok=True, mode=0o700)
        path = self.lock_path(task_id)
        other = self.active_pid(task_id)
        if other is not None and other != os.getpid():
            # Overlapping runs are allowed; the lock only guards re-registration
            logger.warning(f"Task {task_id} is already executing in PID {other}")
        path.write_text(str(os.getpid()), encoding="utf-8")
        return path

    def release(self, task_id: str) -> None:
        """Remove the lock if this process still owns it."""
        path = self.lock_path(task_id)
        if self._read_pid(path) != os.getpid():
            return
        try:
            path.unlink()
        except FileNotFoundError:
            pass

    @contextmanager
    def held(self, task_id: str) -> Iterator[Path]:
        path = self.acquire(task_id)
        try:
            yield path
        finally:
            self.release(task_id)
