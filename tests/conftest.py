from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

import pytest
import yaml

from cron_runner.config.settings import load_settings
from cron_runner.jobs.loader import JobDescriptor
from cron_runner.scheduler.timers import TimerCallback, TimerFacility, TimerHandle, parse_cron_expression
from cron_runner.utils import utcnow

BASE_URL = "http://upstream.test"
API_KEY = "secret-key"


class FakeTimerFacility(TimerFacility):
    """Real cron parsing, no background loop: fires happen only when a test calls `fire()`."""

    def __init__(self) -> None:
        self.rules: dict[str, Any] = {}
        self.callbacks: dict[str, TimerCallback] = {}
        self.next_time_queries = 0
        self.stopped = False

    def parse(self, expression: str) -> Any:
        return parse_cron_expression(expression)

    def schedule(self, key: str, rule: Any, callback: TimerCallback) -> TimerHandle:
        self.rules[key] = rule
        self.callbacks[key] = callback
        return TimerHandle(key=key)

    def next_fire_time(self, handle: TimerHandle) -> datetime | None:
        self.next_time_queries += 1
        return self.rules[handle.key].get_next_fire_time(None, utcnow())

    def shutdown(self) -> None:
        self.stopped = True

    async def fire(self, key: str) -> None:
        await self.callbacks[key]()


@pytest.fixture
def fake_timers() -> FakeTimerFacility:
    return FakeTimerFacility()


@pytest.fixture
def scenario_jobs() -> list[JobDescriptor]:
    return [
        JobDescriptor(name="A", schedule="* * * * *", path="/a", enabled=True),
        JobDescriptor(name="B", schedule="bad", path="/b", enabled=True),
        JobDescriptor(name="C", schedule="0 0 * * *", path="/c", enabled=False),
    ]


def write_jobs_file(path: Path, jobs: list[dict[str, Any]]) -> Path:
    path.write_text(yaml.safe_dump({"jobs": jobs}), encoding="utf-8")
    return path


@pytest.fixture
def base_env(tmp_path: Path) -> dict[str, str]:
    jobs_file = write_jobs_file(
        tmp_path / "jobs.yaml",
        [
            {"name": "A", "schedule": "0 0 1 1 *", "endpoint": "/a", "enabled": True},
            {"name": "B", "schedule": "bad", "endpoint": "/b", "enabled": True},
            {"name": "C", "schedule": "0 0 * * *", "endpoint": "/c", "enabled": False},
            {"name": "D", "schedule": "0 0 1 1 *", "endpoint": "/d"},
        ],
    )
    return {
        "API_KEY": API_KEY,
        "BASE_URL": BASE_URL,
        "APP_ENV": "test",
        "LOG_LEVEL": "info",
        "CRON_JOBS_FILE": str(jobs_file),
    }


@pytest.fixture
def settings(base_env: dict[str, str]):
    return load_settings(base_env)
