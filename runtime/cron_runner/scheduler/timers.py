"""Timer facility boundary.

The registry talks to timers only through TimerFacility: parse an expression into
a recurrence rule, schedule a callback on it, read the next fire instant. The
concrete implementation wraps APScheduler's AsyncIOScheduler so callbacks run as
coroutines on the application's event loop.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable
from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from cron_runner.errors import ScheduleParseError

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None]]

# Cron numbering: 0 and 7 are both Sunday.
_DOW_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat", "sun")
_RANGE = re.compile(r"(\d+)-(\d+)")


@dataclass(frozen=True)
class TimerHandle:
    key: str


class TimerFacility(ABC):
    @abstractmethod
    def parse(self, expression: str) -> Any:
        """Return a recurrence rule for a cron expression. Must raise ScheduleParseError if malformed."""

    @abstractmethod
    def schedule(self, key: str, rule: Any, callback: TimerCallback) -> TimerHandle:
        """Install a started timer that invokes `callback` whenever `rule` fires."""

    @abstractmethod
    def next_fire_time(self, handle: TimerHandle) -> datetime | None:
        """Next instant the timer fires, computed from now (None if it never fires again)."""

    @abstractmethod
    def shutdown(self) -> None:
        """Stop all timers without waiting for in-flight callbacks."""


def cron_day_of_week(field: str) -> str:
    """Translate numeric cron weekdays into APScheduler day names.

    APScheduler numbers weekdays from Monday; crontab numbers them from Sunday.
    Numeric items are expanded to explicit names, named items pass through.
    """
    if field in ("*", "?"):
        return "*"
    names: list[str] = []
    for item in field.split(","):
        base, _, step_raw = item.partition("/")
        m = _RANGE.fullmatch(base)
        if base in ("*", "?"):
            lo, hi = 0, 6
        elif m:
            lo, hi = int(m.group(1)), int(m.group(2))
        elif base.isdigit():
            lo = int(base)
            hi = 6 if step_raw else lo
        else:
            names.append(item)
            continue
        step = int(step_raw) if step_raw else 1
        if not (0 <= lo <= hi <= 7) or step < 1:
            raise ValueError(f"invalid day-of-week field {field!r}")
        names.extend(_DOW_NAMES[n] for n in range(lo, hi + 1, step))
    return ",".join(dict.fromkeys(names))


def parse_cron_expression(expression: str, timezone: str = "UTC") -> CronTrigger:
    """Parse a 5-field (minute-first) or 6-field (second-first) cron expression."""
    fields = expression.split()
    if len(fields) == 5:
        fields = ["0", *fields]
    elif len(fields) != 6:
        raise ScheduleParseError(expression, f"expected 5 or 6 fields, got {len(fields)}")

    second, minute, hour, day, month, dow = fields
    try:
        return CronTrigger(
            second=second,
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=cron_day_of_week(dow),
            timezone=ZoneInfo(timezone),
        )
    except ValueError as e:
        raise ScheduleParseError(expression, str(e)) from e


class APSchedulerTimerFacility(TimerFacility):
    """TimerFacility on an AsyncIOScheduler. Must be used from inside the running event loop."""

    def __init__(self, *, timezone: str = "UTC", scheduler: AsyncIOScheduler | None = None):
        self._timezone = timezone
        self._scheduler = scheduler or AsyncIOScheduler(timezone=ZoneInfo(timezone))

    def parse(self, expression: str) -> CronTrigger:
        return parse_cron_expression(expression, self._timezone)

    def schedule(self, key: str, rule: Any, callback: TimerCallback) -> TimerHandle:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("timer_facility_started", extra={"event": "timer_facility_started"})
        # One natural fire per job at a time; overdue fires collapse into one.
        self._scheduler.add_job(callback, trigger=rule, id=key, name=key, max_instances=1, coalesce=True)
        return TimerHandle(key=key)

    def next_fire_time(self, handle: TimerHandle) -> datetime | None:
        job = self._scheduler.get_job(handle.key)
        if job is None:
            return None
        return job.next_run_time

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
