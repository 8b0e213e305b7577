"""FastAPI surface for the cron runner."""

from __future__ import annotations

import logging
import re
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from cron_runner import __version__
from cron_runner.api.middleware import register_request_logging
from cron_runner.config.logging import configure_logging
from cron_runner.config.settings import Settings, load_settings
from cron_runner.dispatch.client import HttpDispatcher
from cron_runner.errors import CronServiceError, InvalidJobIndexError, JobNotFoundError
from cron_runner.jobs.loader import load_job_descriptors
from cron_runner.scheduler.registry import JobRegistry
from cron_runner.scheduler.runner import CronScheduler
from cron_runner.scheduler.timers import APSchedulerTimerFacility, TimerFacility
from cron_runner.utils import format_optional, format_rfc3339, utcnow

logger = logging.getLogger(__name__)

SERVICE_NAME = "cron-runner"
_INDEX = re.compile(r"[+-]?\d+")


@dataclass(frozen=True)
class AppComponents:
    settings: Settings
    scheduler: CronScheduler
    dispatcher: HttpDispatcher
    started_at: float


def build_components(
    settings: Settings,
    *,
    dispatcher: HttpDispatcher | None = None,
    timers: TimerFacility | None = None,
) -> AppComponents:
    """Load the job list and start its timers. Must run inside the event loop."""
    descriptors = load_job_descriptors(settings.scheduler.jobs_file)

    dispatcher = dispatcher or HttpDispatcher.from_config(settings.dispatch)
    registry = JobRegistry(timers or APSchedulerTimerFacility(timezone=settings.scheduler.timezone))
    scheduler = CronScheduler(registry=registry, dispatcher=dispatcher, base_url=settings.dispatch.base_url)
    scheduler.initialize(descriptors)

    return AppComponents(settings=settings, scheduler=scheduler, dispatcher=dispatcher, started_at=time.monotonic())


def parse_job_index(raw: str) -> int:
    if not _INDEX.fullmatch(raw.strip()):
        raise InvalidJobIndexError(raw)
    return int(raw)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    # Fail closed: invalid environment or job file aborts startup before requests are served.
    settings = load_settings()
    configure_logging(settings)
    comps = build_components(settings)
    app.state.components = comps
    logger.info("runtime_started", extra={"event": "runtime_started"})
    try:
        yield
    finally:
        comps.scheduler.shutdown()
        await comps.dispatcher.aclose()
        logger.info("runtime_stopped", extra={"event": "runtime_stopped"})


app = FastAPI(title="Cron Runner", version=__version__, lifespan=_lifespan)
register_request_logging(app)


@app.exception_handler(JobNotFoundError)
async def _not_found_handler(_req: Request, exc: JobNotFoundError):
    return JSONResponse(status_code=404, content={"message": str(exc), "jobIndex": exc.job_index})


@app.exception_handler(CronServiceError)
async def _service_error_handler(_req: Request, exc: CronServiceError):
    return JSONResponse(status_code=400, content={"message": str(exc)})


@app.exception_handler(StarletteHTTPException)
async def _http_exception_handler(req: Request, exc: StarletteHTTPException):
    if exc.status_code < 500:
        return await http_exception_handler(req, exc)
    logger.error("Internal server error: %s", exc.detail, extra={"event": "http_error", "status_code": exc.status_code})
    return JSONResponse(status_code=exc.status_code, content={"message": "Internal server error"})


@app.exception_handler(Exception)
async def _unhandled_handler(req: Request, exc: Exception):
    logger.exception("Unhandled error at path=%s", req.url.path, extra={"event": "unhandled_error"})
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


def _components() -> AppComponents:
    return app.state.components


@app.get("/cron/health")
def health() -> dict[str, Any]:
    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "timestamp": format_rfc3339(utcnow()),
        "uptime": round(time.monotonic() - _components().started_at, 3),
    }


@app.get("/cron/")
def list_jobs() -> dict[str, Any]:
    jobs = [j.to_api() for j in _components().scheduler.list_jobs()]
    return {"totalJobs": len(jobs), "jobs": jobs}


@app.get("/cron/{index}/status")
def get_job_status(index: str) -> dict[str, Any]:
    status = _components().scheduler.get_status(parse_job_index(index))
    return {
        "running": status.running,
        "lastDate": format_optional(status.last_fire_time),
        "nextDate": format_optional(status.next_fire_time),
    }


@app.post("/cron/{index}/start", status_code=201)
async def start_job(index: str) -> dict[str, Any]:
    result = await _components().scheduler.trigger_manually(parse_job_index(index))
    if result.success:
        return {"success": True, "message": "Job executed manually", "result": result.payload}
    return {"success": False, "message": "Job execution failed", "error": result.error_message}
