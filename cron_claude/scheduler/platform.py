"""Platform abstraction for native scheduling and process checks.

Provides a unified interface across Windows (Task Scheduler) and
Linux/macOS (user crontab).
"""

import sys

from cron_claude.scheduler.native import NativeScheduler

if sys.platform == "win32":
    from cron_claude.scheduler.platform_win import (
        WindowsTaskScheduler as DefaultNativeScheduler,
    )
    from cron_claude.scheduler.platform_win import is_process_running
else:
    from cron_claude.scheduler.platform_unix import (
        CrontabScheduler as DefaultNativeScheduler,
    )
    from cron_claude.scheduler.platform_unix import is_process_running


def get_native_scheduler(runner=None) -> NativeScheduler:
    """The native scheduler adapter for the current OS."""
    return DefaultNativeScheduler(runner=runner)


__all__ = ["DefaultNativeScheduler", "get_native_scheduler", "is_process_running"]
