"""Outbound HTTP dispatcher.

One shared httpx.AsyncClient issues the GET for every job trigger. Every outcome,
including timeouts, connection errors, non-2xx statuses and undecodable bodies,
comes back as an ExecutionResult; nothing here raises for a failed call.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Mapping

import httpx

from cron_runner.config.settings import DispatchConfig

API_KEY_HEADER = "X-Internal-Api-Key"
_DETAIL_LIMIT = 500


@dataclass(frozen=True)
class ExecutionResult:
    success: bool
    payload: Any = None
    error_message: str | None = None
    status_code: int | None = None
    # Response body excerpt of a failed call, for logs only.
    detail: str | None = None

    @classmethod
    def ok(cls, payload: Any, status_code: int) -> "ExecutionResult":
        return cls(success=True, payload=payload, status_code=status_code)

    @classmethod
    def failed(cls, message: str, *, status_code: int | None = None, detail: str | None = None) -> "ExecutionResult":
        return cls(success=False, error_message=message, status_code=status_code, detail=detail)


def default_headers(api_key: str) -> dict[str, str]:
    return {"accept": "*/*", API_KEY_HEADER: api_key}


def _is_json(response: httpx.Response) -> bool:
    ctype = response.headers.get("content-type", "").split(";")[0].strip().lower()
    return ctype == "application/json" or ctype.endswith("+json")


def _decode_payload(response: httpx.Response) -> Any:
    if not response.content:
        return None
    if _is_json(response):
        return json.loads(response.text)
    return response.text


class HttpDispatcher:
    def __init__(self, *, client: httpx.AsyncClient, headers: Mapping[str, str], timeout_seconds: float):
        self._client = client
        self._headers = dict(headers)
        self._timeout = timeout_seconds

    @classmethod
    def from_config(cls, cfg: DispatchConfig) -> "HttpDispatcher":
        client = httpx.AsyncClient(
            timeout=httpx.Timeout(cfg.timeout_seconds),
            follow_redirects=True,
            max_redirects=cfg.max_redirects,
        )
        return cls(client=client, headers=default_headers(cfg.api_key), timeout_seconds=cfg.timeout_seconds)

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    async def get(self, url: str) -> ExecutionResult:
        try:
            # httpx timeouts are per phase; wait_for bounds the whole exchange.
            response = await asyncio.wait_for(self._client.get(url, headers=self._headers), timeout=self._timeout)
            response.raise_for_status()
        except (httpx.TimeoutException, asyncio.TimeoutError):
            return ExecutionResult.failed(f"timeout of {self._timeout:g}s exceeded: GET {url}")
        except httpx.HTTPStatusError as exc:
            return ExecutionResult.failed(
                f"Request failed with status code {exc.response.status_code}",
                status_code=exc.response.status_code,
                detail=exc.response.text[:_DETAIL_LIMIT],
            )
        except httpx.HTTPError as exc:
            return ExecutionResult.failed(str(exc) or exc.__class__.__name__)
        except (httpx.InvalidURL, UnicodeError) as exc:
            return ExecutionResult.failed(f"Request could not be built: {exc}")

        try:
            payload = _decode_payload(response)
        except ValueError as exc:
            return ExecutionResult.failed(
                f"Malformed response body: {exc}",
                status_code=response.status_code,
                detail=response.text[:_DETAIL_LIMIT],
            )
        return ExecutionResult.ok(payload, response.status_code)

    async def aclose(self) -> None:
        await self._client.aclose()
