from __future__ import annotations

import logging
import time
from typing import Callable

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("cron_runner.request")


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable):
        start = time.perf_counter()
        method = request.method
        path = request.url.path

        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000.0
            logger.error(
                "method=%s path=%s status=%s duration_ms=%.2f UNHANDLED",
                method, path, 500, duration_ms,
                extra={"event": "request_failed", "method": method, "path": path, "status_code": 500, "duration_ms": round(duration_ms, 2)},
            )
            raise

        duration_ms = (time.perf_counter() - start) * 1000.0
        logger.info(
            "method=%s path=%s status=%s duration_ms=%.2f",
            method, path, response.status_code, duration_ms,
            extra={"event": "request", "method": method, "path": path, "status_code": response.status_code, "duration_ms": round(duration_ms, 2)},
        )
        return response


def register_request_logging(app: FastAPI) -> None:
    app.add_middleware(RequestLogMiddleware)
