from __future__ import annotations

import asyncio

import httpx
import pytest
import respx

from cron_runner.dispatch.client import HttpDispatcher, default_headers
from cron_runner.errors import JobNotFoundError, SchedulerAlreadyInitializedError
from cron_runner.jobs.loader import JobDescriptor
from cron_runner.scheduler.registry import JobRegistry
from cron_runner.scheduler.runner import CronScheduler
from cron_runner.scheduler.timers import APSchedulerTimerFacility
from cron_runner.utils import join_url

from conftest import API_KEY, BASE_URL


def _scheduler(timers, client: httpx.AsyncClient | None = None) -> CronScheduler:
    dispatcher = HttpDispatcher(
        client=client or httpx.AsyncClient(),
        headers=default_headers(API_KEY),
        timeout_seconds=30,
    )
    return CronScheduler(registry=JobRegistry(timers), dispatcher=dispatcher, base_url=BASE_URL)


class TestInitialize:
    def test_registers_only_enabled_parseable_jobs(self, fake_timers, scenario_jobs) -> None:
        scheduler = _scheduler(fake_timers)
        assert scheduler.initialize(scenario_jobs) == 1

        jobs = scheduler.list_jobs()
        assert len(jobs) == 1
        assert jobs[0].to_api() == {"index": 0, "name": "A", "schedule": "* * * * *", "endpoint": "/a", "enabled": True}
        assert list(fake_timers.callbacks) == ["job-0"]

    def test_dropped_jobs_are_not_found(self, fake_timers, scenario_jobs) -> None:
        scheduler = _scheduler(fake_timers)
        scheduler.initialize(scenario_jobs)

        for index in (1, 2, 3):
            with pytest.raises(JobNotFoundError) as ei:
                scheduler.get_status(index)
            assert ei.value.job_index == index

    def test_original_indices_survive_gaps(self, fake_timers) -> None:
        scheduler = _scheduler(fake_timers)
        scheduler.initialize(
            [
                JobDescriptor(name="off", schedule="* * * * *", path="/x", enabled=False),
                JobDescriptor(name="broken", schedule="* * *", path="/y"),
                JobDescriptor(name="ok", schedule="*/5 * * * *", path="/z"),
            ]
        )
        assert [(j.index, j.name) for j in scheduler.list_jobs()] == [(2, "ok")]
        assert scheduler.get_status(2).next_fire_time is not None

    def test_runs_once(self, fake_timers, scenario_jobs) -> None:
        scheduler = _scheduler(fake_timers)
        scheduler.initialize(scenario_jobs)
        with pytest.raises(SchedulerAlreadyInitializedError):
            scheduler.initialize(scenario_jobs)
        assert len(scheduler.list_jobs()) == 1

    def test_list_jobs_is_idempotent(self, fake_timers) -> None:
        scheduler = _scheduler(fake_timers)
        scheduler.initialize([JobDescriptor(name=n, schedule="* * * * *", path=f"/{n}") for n in "abc"])
        assert scheduler.list_jobs() == scheduler.list_jobs()

    def test_status_before_first_fire(self, fake_timers, scenario_jobs) -> None:
        scheduler = _scheduler(fake_timers)
        scheduler.initialize(scenario_jobs)
        status = scheduler.get_status(0)
        assert status.running is False
        assert status.last_fire_time is None
        assert status.next_fire_time is not None


class TestTriggerManually:
    @respx.mock
    def test_success_returns_payload(self, fake_timers, scenario_jobs) -> None:
        route = respx.get(f"{BASE_URL}/a").mock(return_value=httpx.Response(200, json={"ok": True}))
        scheduler = _scheduler(fake_timers)
        scheduler.initialize(scenario_jobs)

        result = asyncio.run(scheduler.trigger_manually(0))

        assert result.success is True
        assert result.payload == {"ok": True}
        assert route.calls.last.request.headers["X-Internal-Api-Key"] == API_KEY

    @respx.mock
    def test_downstream_failure_is_a_result(self, fake_timers, scenario_jobs) -> None:
        respx.get(f"{BASE_URL}/a").mock(return_value=httpx.Response(500, text="boom"))
        scheduler = _scheduler(fake_timers)
        scheduler.initialize(scenario_jobs)

        result = asyncio.run(scheduler.trigger_manually(0))

        assert result.success is False
        assert result.error_message == "Request failed with status code 500"

    def test_unknown_index(self, fake_timers, scenario_jobs) -> None:
        scheduler = _scheduler(fake_timers)
        scheduler.initialize(scenario_jobs)
        with pytest.raises(JobNotFoundError) as ei:
            asyncio.run(scheduler.trigger_manually(2))
        assert ei.value.job_index == 2

    def test_manual_trigger_does_not_mark_job_running(self, fake_timers, scenario_jobs) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200)

        scheduler = _scheduler(fake_timers, httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        scheduler.initialize(scenario_jobs)
        asyncio.run(scheduler.trigger_manually(0))
        assert scheduler.get_status(0).last_fire_time is None

    def test_concurrent_triggers_do_not_block_each_other(self, fake_timers, scenario_jobs) -> None:
        async def run():
            arrived = 0
            both_in_flight = asyncio.Event()

            async def handler(request: httpx.Request) -> httpx.Response:
                nonlocal arrived
                arrived += 1
                if arrived == 2:
                    both_in_flight.set()
                # Neither response is produced until both requests are in flight.
                await asyncio.wait_for(both_in_flight.wait(), timeout=5)
                return httpx.Response(200, json={"call": arrived})

            scheduler = _scheduler(fake_timers, httpx.AsyncClient(transport=httpx.MockTransport(handler)))
            scheduler.initialize(scenario_jobs)
            return await asyncio.gather(scheduler.trigger_manually(0), scheduler.trigger_manually(0))

        first, second = asyncio.run(run())
        assert first.success and second.success
        assert first is not second


@respx.mock
def test_timer_fire_dispatches_through_same_path(fake_timers, scenario_jobs) -> None:
    route = respx.get(f"{BASE_URL}/a").mock(return_value=httpx.Response(200, json={"ok": True}))
    scheduler = _scheduler(fake_timers)
    scheduler.initialize(scenario_jobs)

    asyncio.run(fake_timers.fire("job-0"))

    assert route.call_count == 1
    status = scheduler.get_status(0)
    assert status.last_fire_time is not None
    assert status.running is False


@respx.mock
def test_timer_fire_swallows_downstream_failure(fake_timers, scenario_jobs) -> None:
    respx.get(f"{BASE_URL}/a").mock(side_effect=httpx.ConnectError("refused"))
    scheduler = _scheduler(fake_timers)
    scheduler.initialize(scenario_jobs)

    asyncio.run(fake_timers.fire("job-0"))

    assert scheduler.get_status(0).last_fire_time is not None


@respx.mock
def test_real_scheduler_fires_every_second() -> None:
    route = respx.get(f"{BASE_URL}/tick").mock(return_value=httpx.Response(200, json={"ok": True}))

    async def run():
        scheduler = _scheduler(APSchedulerTimerFacility())
        try:
            scheduler.initialize([JobDescriptor(name="tick", schedule="* * * * * *", path="/tick")])
            registered = scheduler.get_status(0)
            await asyncio.sleep(2.2)
            return registered, scheduler.get_status(0)
        finally:
            scheduler.shutdown()

    registered, after = asyncio.run(run())

    assert route.call_count >= 1
    assert registered.last_fire_time is None
    assert after.last_fire_time is not None
    assert after.next_fire_time > registered.next_fire_time


def test_shutdown_stops_timers(fake_timers, scenario_jobs) -> None:
    scheduler = _scheduler(fake_timers)
    scheduler.initialize(scenario_jobs)
    scheduler.shutdown()
    assert fake_timers.stopped is True


@pytest.mark.parametrize(
    "base,path,expected",
    [
        ("http://h.test", "/a", "http://h.test/a"),
        ("http://h.test/", "/a", "http://h.test/a"),
        ("http://h.test/api", "a", "http://h.test/api/a"),
        ("http://h.test", "", "http://h.test"),
    ],
)
def test_join_url(base: str, path: str, expected: str) -> None:
    assert join_url(base, path) == expected
