"""Translate cron expressions into native scheduler triggers.

Only a small subset of cron is understood:

* minute and hour give a single time of day (their leading integer only;
  lists and steps are not expanded into several times)
* a day-of-week field makes the trigger weekly
* otherwise a day-of-month field makes it monthly
* otherwise it is daily

Month restrictions are accepted and dropped.
"""

import logging
import re
from typing import List, Optional, Tuple

from croniter import croniter

from cron_claude.errors import InvalidScheduleError
from cron_claude.scheduler.triggers import (
    WEEKDAY_CODES,
    DailyTrigger,
    MonthlyTrigger,
    ScheduleTrigger,
    WeeklyTrigger,
)

logger = logging.getLogger(__name__)

_LEADING_INT = re.compile(r"^(\d+)")
_WEEKDAY_NAMES = {code.lower(): idx for idx, code in enumerate(WEEKDAY_CODES)}
_DAY_OF_MONTH_RANGE = re.compile(r"^(\d{1,2})(?:-(\d{1,2}))?$")


def split_fields(expression: str) -> List[str]:
    """Validate and split a five-field cron expression."""
    if not isinstance(expression, str):
        raise InvalidScheduleError(repr(expression), "cron expression must be a string")
    fields = expression.split()
    if len(fields) != 5:
        raise InvalidScheduleError(
            expression, f"expected 5 fields (minute hour day month weekday), got {len(fields)}"
        )
    if not croniter.is_valid(" ".join(fields)):
        raise InvalidScheduleError(expression)
    return fields


def _time_of_day(minute: str, hour: str) -> str:
    if minute == "*" or hour == "*":
        return "00:00"
    minute_match = _LEADING_INT.match(minute)
    hour_match = _LEADING_INT.match(hour)
    if not minute_match or not hour_match:
        return "00:00"
    return f"{int(hour_match.group(1)):02d}:{int(minute_match.group(1)):02d}"


def _weekday_value(token: str, expression: str) -> int:
    """Raw day-of-week value, 0-7 (both ends mean Sunday)."""
    token = token.strip().lower()
    if token.isdigit():
        value = int(token)
        if 0 <= value <= 7:
            return value
    elif token[:3] in _WEEKDAY_NAMES:
        return _WEEKDAY_NAMES[token[:3]]
    raise InvalidScheduleError(expression, f"unsupported day-of-week value {token!r}")


def parse_weekdays(field: str, expression: str = "") -> Tuple[str, ...]:
    """Expand a day-of-week field into weekday codes in week order.

    Handles lists, ranges, names and steps; 0 and 7 both mean Sunday.
    """
    expression = expression or field
    selected = set()
    for part in field.split(","):
        step = 1
        if "/" in part:
            part, step_text = part.split("/", 1)
            if not step_text.isdigit() or int(step_text) < 1:
                raise InvalidScheduleError(expression, f"invalid weekday step {step_text!r}")
            step = int(step_text)
        if part == "*":
            start, end = 0, 6
        elif "-" in part:
            low, high = part.split("-", 1)
            start = _weekday_value(low, expression)
            end = _weekday_value(high, expression)
            if end < start:
                raise InvalidScheduleError(expression, f"descending weekday range {part!r}")
        else:
            start = end = _weekday_value(part, expression)
        for value in range(start, end + 1, step):
            selected.add(value % 7)
    return tuple(code for idx, code in enumerate(WEEKDAY_CODES) if idx in selected)


def parse_days_of_month(field: str, expression: str = "") -> Tuple[int, ...]:
    """Expand lists and ranges of calendar days.

    Other forms (steps, L, W) fall back to the 1st with a warning rather than
    being silently reinterpreted.
    """
    days = set()
    for part in field.split(","):
        match = _DAY_OF_MONTH_RANGE.match(part.strip())
        if not match:
            logger.warning(
                f"Day-of-month {field!r} in {expression or field!r} is not a plain "
                "list or range; scheduling on day 1 instead"
            )
            return (1,)
        start = int(match.group(1))
        end = int(match.group(2) or start)
        days.update(range(start, end + 1))
    return tuple(sorted(d for d in days if 1 <= d <= 31)) or (1,)


def translate(expression: str) -> ScheduleTrigger:
    """Turn a cron expression into a Daily, Weekly or Monthly trigger.

    Raises:
        InvalidScheduleError: malformed expression
    """
    minute, hour, day_of_month, month, day_of_week = split_fields(expression)
    time = _time_of_day(minute, hour)

    if month != "*":
        logger.warning(f"Month restriction {month!r} in {expression!r} is not supported and was dropped")

    trigger: Optional[ScheduleTrigger] = None
    if day_of_week != "*":
        trigger = WeeklyTrigger(time=time, days=parse_weekdays(day_of_week, expression))
    elif day_of_month != "*":
        trigger = MonthlyTrigger(
            time=time, days_of_month=parse_days_of_month(day_of_month, expression)
        )
    else:
        trigger = DailyTrigger(time=time)

    logger.debug(f"Translated {expression!r} to {trigger}")
    return trigger
