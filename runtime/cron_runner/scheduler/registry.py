"""In-memory registry of live jobs.

Maps a job's original index to its LiveJob (descriptor + timer handle + fire
state). Written only during startup registration; read-only afterwards.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable

from cron_runner.errors import DuplicateJobError, JobNotFoundError
from cron_runner.jobs.loader import JobDescriptor
from cron_runner.scheduler.timers import TimerFacility, TimerHandle
from cron_runner.utils import utcnow

logger = logging.getLogger(__name__)

FireCallback = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class JobStatus:
    running: bool
    last_fire_time: datetime | None
    next_fire_time: datetime | None


class LiveJob:
    """A registered job whose timer runs for the lifetime of the process."""

    def __init__(self, *, index: int, descriptor: JobDescriptor, timers: TimerFacility, on_fire: FireCallback):
        self.index = index
        self.descriptor = descriptor
        self.handle: TimerHandle | None = None
        self.last_fire_time: datetime | None = None
        self._timers = timers
        self._on_fire = on_fire
        self._in_flight = 0

    @property
    def key(self) -> str:
        return f"job-{self.index}"

    @property
    def running(self) -> bool:
        return self._in_flight > 0

    @property
    def next_fire_time(self) -> datetime | None:
        if self.handle is None:
            return None
        return self._timers.next_fire_time(self.handle)

    async def fire(self) -> None:
        """Timer entry point: run the bound callback and discard its result."""
        self.last_fire_time = utcnow()
        self._in_flight += 1
        try:
            await self._on_fire()
        finally:
            self._in_flight -= 1

    def status(self) -> JobStatus:
        return JobStatus(running=self.running, last_fire_time=self.last_fire_time, next_fire_time=self.next_fire_time)


class JobRegistry:
    def __init__(self, timers: TimerFacility):
        self._timers = timers
        self._jobs: dict[int, LiveJob] = {}

    def register(self, index: int, descriptor: JobDescriptor, on_fire: FireCallback) -> LiveJob:
        """Parse the schedule and install a started timer for `index`.

        Raises ScheduleParseError for a malformed expression (nothing is installed)
        and DuplicateJobError if `index` already has a timer.
        """
        if index in self._jobs:
            raise DuplicateJobError(index)
        rule = self._timers.parse(descriptor.schedule)

        live = LiveJob(index=index, descriptor=descriptor, timers=self._timers, on_fire=on_fire)
        live.handle = self._timers.schedule(live.key, rule, live.fire)
        self._jobs[index] = live
        return live

    def find(self, index: int) -> LiveJob | None:
        return self._jobs.get(index)

    def get(self, index: int) -> LiveJob:
        live = self._jobs.get(index)
        if live is None:
            raise JobNotFoundError(index)
        return live

    def status(self, index: int) -> JobStatus:
        return self.get(index).status()

    def live_jobs(self) -> list[LiveJob]:
        return [self._jobs[i] for i in sorted(self._jobs)]

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, index: object) -> bool:
        return index in self._jobs

    def shutdown(self) -> None:
        self._timers.shutdown()
        logger.info("timers_stopped", extra={"event": "timers_stopped", "job_count": len(self._jobs)})
