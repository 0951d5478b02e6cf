"""Register tasks with the native OS scheduler.

Registration is tried with the caller's privileges first. When the native
scheduler answers with a permission-denied error, the same registration
script is saved to a temporary file and run once through an elevation
request; success is only reported if the task can be found afterwards.
"""

import logging
import os
import shutil
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from cron_claude.errors import (
    ExecutionInProgressError,
    NativeSchedulerError,
    RegistrationError,
)
from cron_claude.scheduler.cron import translate
from cron_claude.scheduler.locks import ExecutionLocks
from cron_claude.scheduler.native import NativeAction, NativeScheduler, is_permission_denied
from cron_claude.scheduler.platform import get_native_scheduler
from cron_claude.scheduler.triggers import ScheduleTrigger
from cron_claude.settings import CronSettings

logger = logging.getLogger(__name__)

EXECUTOR_MODULE = "cron_claude"


@dataclass
class TaskStatus:
    exists: bool
    enabled: Optional[bool] = None
    last_run: Optional[str] = None
    next_run: Optional[str] = None


class SchedulerRegistrar:
    def __init__(
        self,
        settings: CronSettings,
        native: Optional[NativeScheduler] = None,
        locks: Optional[ExecutionLocks] = None,
        python_executable: Optional[str] = None,
    ):
        self.settings = settings
        self.native = native or get_native_scheduler()
        self.locks = locks or ExecutionLocks(settings.locks_dir)
        self.python_executable = python_executable or sys.executable

    def task_name(self, task_id: str) -> str:
        return f"{self.settings.task_name_prefix}{task_id}"

    def resolve_cli_path(self) -> Optional[str]:
        """Absolute path of the CLI tool, if it can be found now.

        The native scheduler often runs with a much smaller PATH than an
        interactive shell, so the resolved path is baked into the action.
        """
        return shutil.which(self.settings.cli_command)

    def build_action(self, task_path: Union[str, Path], install_root: Union[str, Path]) -> NativeAction:
        arguments = ["-m", EXECUTOR_MODULE, str(Path(task_path).resolve())]
        cli_path = self.resolve_cli_path()
        if cli_path:
            arguments.append(cli_path)
        return NativeAction(
            executable=self.python_executable,
            arguments=arguments,
            working_directory=str(Path(install_root).resolve()),
        )

    def register(
        self,
        task_id: str,
        task_path: Union[str, Path],
        cron_expr: str,
        install_root: Union[str, Path],
    ) -> ScheduleTrigger:
        """Install (or replace) the native task for task_id.

        Raises:
            InvalidScheduleError: cron_expr cannot be translated
            ExecutionInProgressError: an execution of this task is running
            RegistrationError: elevation did not produce the task
            NativeSchedulerError: any other native failure
        """
        trigger = translate(cron_expr)
        logger.info(f"Registering task {task_id}: {cron_expr!r} -> {trigger.type.value} at {trigger.time}")

        pid = self.locks.active_pid(task_id)
        if pid is not None:
            raise ExecutionInProgressError(task_id, pid)

        name = self.task_name(task_id)
        action = self.build_action(task_path, install_root)

        try:
            # Building may already need the native scheduler (crontab -l)
            script = self.native.build_registration_script(name, action, trigger)
            self.native.apply_script(script)
        except NativeSchedulerError as e:
            if not is_permission_denied(e):
                raise
            logger.warning(f"Registration of {name} was denied; retrying with elevation")
            self._register_elevated(name, action, trigger)

        logger.info(f"Task {task_id} registered as {name}")
        return trigger

    def _register_elevated(self, name: str, action: NativeAction, trigger: ScheduleTrigger) -> None:
        script = self.native.build_elevated_script(name, action, trigger)
        fd, script_path = tempfile.mkstemp(
            prefix="cron-claude-register-", suffix=self.native.script_suffix
        )
        elevation_error: Optional[NativeSchedulerError] = None
        try:
            with os.fdopen(fd, "w", encoding=self.native.script_encoding, newline="\n") as f:
                f.write(script)
            try:
                self.native.apply_elevated(script_path)
            except NativeSchedulerError as e:
                # The elevated process may still have done its job; query decides.
                logger.warning(f"Elevated registration reported an error: {e}")
                elevation_error = e
        finally:
            try:
                os.unlink(script_path)
            except FileNotFoundError:
                pass

        try:
            info = self.native.query(name)
        except NativeSchedulerError as e:
            raise RegistrationError(
                f"Could not confirm {name} after elevated registration: {e}"
            ) from e
        if info is None:
            raise RegistrationError(
                f"Task {name} was not found after elevated registration"
            ) from elevation_error

    def unregister(self, task_id: str) -> None:
        self.native.delete(self.task_name(task_id))
        logger.info(f"Task {task_id} unregistered")

    def enable(self, task_id: str) -> None:
        self.native.set_enabled(self.task_name(task_id), True)
        logger.info(f"Task {task_id} enabled")

    def disable(self, task_id: str) -> None:
        self.native.set_enabled(self.task_name(task_id), False)
        logger.info(f"Task {task_id} disabled")

    def status(self, task_id: str) -> TaskStatus:
        info = self.native.query(self.task_name(task_id))
        if info is None:
            return TaskStatus(exists=False)
        return TaskStatus(
            exists=True,
            enabled=info.enabled,
            last_run=info.last_run,
            next_run=info.next_run,
        )
