"""Configuration loader for the cron runner.

Rules:
- Read once from the environment at startup (a `.env` in the working directory is loaded first).
- Fail closed: every invalid value is collected and reported in one ConfigurationError.
- Relative file paths are resolved against the working directory.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from cron_runner.errors import ConfigIssue, ConfigurationError
from cron_runner.utils import is_http_url

APP_ENVS = ("development", "production", "test")
LOG_LEVELS = ("fatal", "error", "warn", "info", "debug", "trace")

DEFAULT_PORT = 3000
DEFAULT_DISPATCH_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class ServiceConfig:
    host: str
    port: int


@dataclass(frozen=True)
class DispatchConfig:
    base_url: str
    api_key: str
    timeout_seconds: float
    max_redirects: int = 5


@dataclass(frozen=True)
class SchedulerConfig:
    jobs_file: Path
    timezone: str


@dataclass(frozen=True)
class Settings:
    app_env: str  # development|production|test
    log_level: str
    logging_config_path: Path | None
    service: ServiceConfig
    dispatch: DispatchConfig
    scheduler: SchedulerConfig

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


def default_jobs_file() -> Path:
    return Path(__file__).resolve().parent / "jobs.yaml"


def _get(env: Mapping[str, str], name: str) -> str | None:
    v = env.get(name)
    if v is None:
        return None
    v = v.strip()
    return v or None


def _resolve_path(raw: str) -> Path:
    p = Path(raw)
    if p.is_absolute():
        return p
    return (Path.cwd() / p).resolve()


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Validate the environment into Settings.

    Passing `env` explicitly skips the `.env` lookup (used by tests).
    """
    if env is None:
        load_dotenv(Path.cwd() / ".env")
        env = os.environ

    issues: list[ConfigIssue] = []

    port = DEFAULT_PORT
    raw_port = _get(env, "PORT")
    if raw_port is not None:
        try:
            port = int(raw_port)
        except ValueError:
            issues.append(ConfigIssue("PORT", "must be an integer"))
        else:
            if port <= 0:
                issues.append(ConfigIssue("PORT", "must be a positive number"))
            elif port > 65535:
                issues.append(ConfigIssue("PORT", "must be less than or equal to 65535"))

    app_env = (_get(env, "APP_ENV") or "development").lower()
    if app_env not in APP_ENVS:
        issues.append(ConfigIssue("APP_ENV", f"must be one of {', '.join(APP_ENVS)}"))

    log_level = (_get(env, "LOG_LEVEL") or "debug").lower()
    if log_level not in LOG_LEVELS:
        issues.append(ConfigIssue("LOG_LEVEL", f"must be one of {', '.join(LOG_LEVELS)}"))

    api_key = _get(env, "API_KEY")
    if api_key is None:
        issues.append(ConfigIssue("API_KEY", "must not be empty"))
    elif not (api_key.isascii() and api_key.isprintable()):
        # Sent verbatim as an HTTP header value.
        issues.append(ConfigIssue("API_KEY", "must contain only printable ASCII characters"))

    base_url = _get(env, "BASE_URL")
    if base_url is None or not is_http_url(base_url):
        issues.append(ConfigIssue("BASE_URL", "must be a valid URL"))

    timeout = DEFAULT_DISPATCH_TIMEOUT_SECONDS
    raw_timeout = _get(env, "DISPATCH_TIMEOUT_SECONDS")
    if raw_timeout is not None:
        try:
            timeout = float(raw_timeout)
        except ValueError:
            issues.append(ConfigIssue("DISPATCH_TIMEOUT_SECONDS", "must be a number"))
        else:
            if timeout <= 0:
                issues.append(ConfigIssue("DISPATCH_TIMEOUT_SECONDS", "must be positive"))

    tz = _get(env, "CRON_TIMEZONE") or "UTC"
    try:
        ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError):
        issues.append(ConfigIssue("CRON_TIMEZONE", f"unknown time zone: {tz}"))

    raw_jobs_file = _get(env, "CRON_JOBS_FILE")
    jobs_file = _resolve_path(raw_jobs_file) if raw_jobs_file else default_jobs_file()

    raw_logging_cfg = _get(env, "CRON_LOGGING_CONFIG")
    logging_config_path = _resolve_path(raw_logging_cfg) if raw_logging_cfg else None
    if logging_config_path is not None and not logging_config_path.exists():
        issues.append(ConfigIssue("CRON_LOGGING_CONFIG", f"file not found: {logging_config_path}"))

    if issues:
        raise ConfigurationError("Invalid environment configuration", issues)

    return Settings(
        app_env=app_env,
        log_level=log_level,
        logging_config_path=logging_config_path,
        service=ServiceConfig(host=_get(env, "HOST") or "0.0.0.0", port=port),
        dispatch=DispatchConfig(base_url=str(base_url), api_key=str(api_key), timeout_seconds=timeout),
        scheduler=SchedulerConfig(jobs_file=jobs_file, timezone=tz),
    )
