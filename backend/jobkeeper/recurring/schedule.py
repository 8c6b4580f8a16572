"""
Cron expression parsing on top of APScheduler's CronTrigger.

Expressions use standard crontab fields (minute hour day month weekday),
optionally preceded by a seconds field. Weekday numbers follow crontab
(0 or 7 is Sunday), not APScheduler (0 is Monday), so the weekday field is
translated before the trigger is built.
"""

from datetime import datetime, timezone as dt_timezone
from typing import List, Optional, Set

from apscheduler.triggers.cron import CronTrigger

from .errors import InvalidScheduleError

_WEEKDAY_NAMES = {
    "sun": 0,
    "mon": 1,
    "tue": 2,
    "wed": 3,
    "thu": 4,
    "fri": 5,
    "sat": 6,
}


def _weekday_value(expression: str, token: str) -> int:
    token = token.strip().lower()
    if token in _WEEKDAY_NAMES:
        return _WEEKDAY_NAMES[token]
    if not token.isdigit() or int(token) > 7:
        raise InvalidScheduleError(expression, f"invalid weekday '{token}'")
    return int(token)


def _cron_weekdays(expression: str, field: str) -> Set[int]:
    """Expand a crontab weekday field into the set of weekdays (0 = Sunday)."""
    values: Set[int] = set()
    for part in field.split(","):
        base, has_step, step_text = part.partition("/")
        if not base:
            raise InvalidScheduleError(expression, f"invalid weekday field '{field}'")

        step = 1
        if has_step:
            if not step_text.isdigit() or int(step_text) == 0:
                raise InvalidScheduleError(expression, f"invalid step '{step_text}'")
            step = int(step_text)

        if base == "*":
            start, end = 0, 6
        elif "-" in base:
            first, _, last = base.partition("-")
            start = _weekday_value(expression, first)
            end = _weekday_value(expression, last)
            if end < start:
                raise InvalidScheduleError(
                    expression, f"weekday range '{base}' runs backwards"
                )
        else:
            start = _weekday_value(expression, base)
            end = 6 if has_step else start

        values.update(day % 7 for day in range(start, end + 1, step))
    return values


def _translate_day_of_week(expression: str, field: str) -> str:
    if field in ("*", "?"):
        return "*"
    weekdays = _cron_weekdays(expression, field)
    if len(weekdays) == 7:
        return "*"
    # crontab Sunday=0..Saturday=6 -> APScheduler Monday=0..Sunday=6
    return ",".join(str(n) for n in sorted((day - 1) % 7 for day in weekdays))


def parse_cron_expression(expression: str, timezone: str = "UTC") -> CronTrigger:
    """
    Build a CronTrigger from a 5 or 6 field cron expression.

    Args:
        expression: "minute hour day month weekday", or the same with a
            leading seconds field
        timezone: Time zone the expression is evaluated in

    Raises:
        InvalidScheduleError: If the expression is malformed
    """
    if not expression or not expression.strip():
        raise InvalidScheduleError(expression, "expression is empty")

    fields = expression.split()
    if len(fields) == 5:
        second = "0"
        minute, hour, day, month, day_of_week = fields
    elif len(fields) == 6:
        second, minute, hour, day, month, day_of_week = fields
    else:
        raise InvalidScheduleError(
            expression,
            "expected 5 fields (minute hour day month weekday) "
            "or 6 with a leading seconds field",
        )

    try:
        return CronTrigger(
            second=second,
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=_translate_day_of_week(expression, day_of_week),
            timezone=timezone,
        )
    except (ValueError, TypeError) as e:
        raise InvalidScheduleError(expression, str(e)) from e


def validate_cron_expression(expression: str) -> None:
    parse_cron_expression(expression)


def preview_fire_times(
    expression: str,
    count: int = 5,
    timezone: str = "UTC",
    now: Optional[datetime] = None,
) -> List[datetime]:
    """Return the next ``count`` fire times of ``expression`` after ``now``."""
    trigger = parse_cron_expression(expression, timezone)
    current = now or datetime.now(dt_timezone.utc)
    fire_times: List[datetime] = []
    previous: Optional[datetime] = None
    while len(fire_times) < count:
        next_time = trigger.get_next_fire_time(previous, current)
        if next_time is None:
            break
        fire_times.append(next_time)
        previous = next_time
        current = next_time
    return fire_times
