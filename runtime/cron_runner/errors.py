"""Cron runner error types.

The runner is fail-closed at startup: invalid configuration aborts the process.
Business-rule errors are mapped to HTTP responses in the API layer. Downstream
dispatch failures are never raised; they travel as ExecutionResult values.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable


class CronRunnerError(Exception):
    """Base class for runner errors."""


@dataclass(frozen=True)
class ConfigIssue:
    key: str
    message: str


class ConfigurationError(CronRunnerError):
    def __init__(self, message: str, issues: Iterable[ConfigIssue] = ()):
        self.issues = list(issues)
        if self.issues:
            detail = "; ".join(f"{i.key}: {i.message}" for i in self.issues)
            message = f"{message} ({detail})"
        super().__init__(message)


class CronServiceError(CronRunnerError):
    """Business-rule errors of the scheduling service (HTTP 400 unless mapped more specifically)."""


class JobNotFoundError(CronServiceError):
    def __init__(self, job_index: int):
        self.job_index = job_index
        super().__init__(f"Job with index {job_index} not found")


class InvalidJobIndexError(CronServiceError):
    def __init__(self, raw: str):
        self.raw = raw
        super().__init__(f"Job index must be an integer: {raw!r}")


class ScheduleParseError(CronServiceError):
    def __init__(self, schedule: str, reason: str):
        self.schedule = schedule
        self.reason = reason
        super().__init__(f"Invalid cron expression {schedule!r}: {reason}")


class DuplicateJobError(CronServiceError):
    def __init__(self, job_index: int):
        self.job_index = job_index
        super().__init__(f"A timer is already registered for job index {job_index}")


class SchedulerAlreadyInitializedError(CronServiceError):
    def __init__(self) -> None:
        super().__init__("Scheduler has already been initialized")
