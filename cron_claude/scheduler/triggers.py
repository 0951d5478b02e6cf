"""Schedule trigger variants produced by the cron translator."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

# Week order used everywhere a weekday set is rendered
WEEKDAY_CODES = ("SUN", "MON", "TUE", "WED", "THU", "FRI", "SAT")


class TriggerType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ONCE = "once"
    STARTUP = "startup"


@dataclass(frozen=True)
class ScheduleTrigger:
    """Base trigger. `time` is 24-hour HH:MM; `interval` is reserved."""

    time: str = "00:00"
    interval: Optional[int] = None

    type = None  # overridden by each variant

    @property
    def hour(self) -> int:
        return int(self.time.split(":")[0])

    @property
    def minute(self) -> int:
        return int(self.time.split(":")[1])


@dataclass(frozen=True)
class DailyTrigger(ScheduleTrigger):
    type = TriggerType.DAILY


@dataclass(frozen=True)
class WeeklyTrigger(ScheduleTrigger):
    days: Tuple[str, ...] = ()

    type = TriggerType.WEEKLY


@dataclass(frozen=True)
class MonthlyTrigger(ScheduleTrigger):
    days_of_month: Tuple[int, ...] = (1,)

    type = TriggerType.MONTHLY


@dataclass(frozen=True)
class OnceTrigger(ScheduleTrigger):
    # ISO date (YYYY-MM-DD) on which to fire
    date: str = ""

    type = TriggerType.ONCE


@dataclass(frozen=True)
class StartupTrigger(ScheduleTrigger):
    type = TriggerType.STARTUP
