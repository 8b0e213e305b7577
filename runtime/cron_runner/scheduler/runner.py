"""Scheduler core.

Turns the static job list into live timers at startup and owns the single
dispatch path shared by timer fires and manual triggers:
- startup registers every enabled job with a parseable schedule
- a bad schedule is logged and skipped, it never aborts the other jobs
- dispatch always returns an ExecutionResult, it never raises for call outcomes
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Sequence

from cron_runner.dispatch.client import ExecutionResult, HttpDispatcher
from cron_runner.errors import ScheduleParseError, SchedulerAlreadyInitializedError
from cron_runner.jobs.loader import JobDescriptor
from cron_runner.scheduler.registry import JobRegistry, JobStatus
from cron_runner.utils import join_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobSummary:
    index: int
    name: str
    schedule: str
    endpoint: str
    enabled: bool

    def to_api(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "name": self.name,
            "schedule": self.schedule,
            "endpoint": self.endpoint,
            "enabled": self.enabled,
        }


class CronScheduler:
    def __init__(self, *, registry: JobRegistry, dispatcher: HttpDispatcher, base_url: str):
        self._registry = registry
        self._dispatcher = dispatcher
        self._base_url = base_url
        self._initialized = False

    def initialize(self, descriptors: Sequence[JobDescriptor]) -> int:
        """Register timers for the enabled jobs. Returns the number of live jobs."""
        if self._initialized:
            raise SchedulerAlreadyInitializedError()
        self._initialized = True

        logger.info("Initializing cron jobs", extra={"event": "scheduler_initializing", "job_count": len(descriptors)})

        for index, job in enumerate(descriptors):
            if not job.enabled:
                logger.warning(
                    "Skipping (disabled): %s",
                    job.name,
                    extra={"event": "job_disabled", "job_index": index, "job_name": job.name},
                )
                continue

            try:
                self._registry.register(index, job, self._timer_callback(job))
            except ScheduleParseError as e:
                logger.error(
                    "Failed to configure %s: %s",
                    job.name,
                    e,
                    extra={"event": "job_registration_failed", "job_index": index, "job_name": job.name, "schedule": job.schedule},
                )
                continue

            logger.info(
                "Configured: %s (%s)",
                job.name,
                job.schedule,
                extra={"event": "job_registered", "job_index": index, "job_name": job.name, "schedule": job.schedule},
            )

        total = len(self._registry)
        logger.info("Total cron jobs configured: %d", total, extra={"event": "scheduler_initialized", "job_count": total})
        return total

    def _timer_callback(self, job: JobDescriptor):
        async def _fire() -> None:
            # Scheduled runs only log the outcome (dispatch already did).
            await self.dispatch(job.name, job.path)

        return _fire

    async def dispatch(self, name: str, path: str) -> ExecutionResult:
        url = join_url(self._base_url, path)
        logger.info("Executing: %s", name, extra={"event": "dispatch_started", "job_name": name, "url": url})

        result = await self._dispatcher.get(url)

        if result.success:
            logger.info(
                "Completed: %s - Status: %s",
                name,
                result.status_code,
                extra={"event": "dispatch_succeeded", "job_name": name, "url": url, "status_code": result.status_code},
            )
        else:
            logger.error(
                "Error in %s: %s (status=%s, data=%s)",
                name,
                result.error_message,
                result.status_code if result.status_code is not None else "N/A",
                result.detail or "{}",
                extra={"event": "dispatch_failed", "job_name": name, "url": url, "status_code": result.status_code},
            )
        return result

    def list_jobs(self) -> list[JobSummary]:
        return [
            JobSummary(
                index=live.index,
                name=live.descriptor.name,
                schedule=live.descriptor.schedule,
                endpoint=live.descriptor.path,
                enabled=live.descriptor.enabled,
            )
            for live in self._registry.live_jobs()
        ]

    def get_status(self, index: int) -> JobStatus:
        return self._registry.status(index)

    async def trigger_manually(self, index: int) -> ExecutionResult:
        """Run one live job's dispatch now. Raises JobNotFoundError for a non-live index."""
        job = self._registry.get(index).descriptor
        logger.info(
            "Manual execution requested: %s",
            job.name,
            extra={"event": "manual_trigger", "job_index": index, "job_name": job.name},
        )
        return await self.dispatch(job.name, job.path)

    def shutdown(self) -> None:
        self._registry.shutdown()
