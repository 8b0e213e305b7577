"""Logging helpers.

Production uses Python logging with a JSON formatter (one object per line);
other environments get a readable single-line format. A YAML dictConfig file can
replace both.
"""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from cron_runner.config.settings import Settings
from cron_runner.errors import ConfigurationError

_LEVELS: dict[str, str] = {
    "fatal": "CRITICAL",
    "error": "ERROR",
    "warn": "WARNING",
    "info": "INFO",
    "debug": "DEBUG",
    "trace": "DEBUG",
}

_TEXT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        # Common structured extras (when provided).
        for k in ("event", "job_index", "job_name", "job_count", "schedule", "url", "method", "path", "status_code", "duration_ms"):
            v = getattr(record, k, None)
            if v is not None:
                base[k] = v

        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(base, ensure_ascii=True, sort_keys=True, default=str)


def python_level(level: str) -> str:
    return _LEVELS.get(level.lower(), "INFO")


def build_logging_config(settings: Settings) -> dict[str, Any]:
    formatter = "json" if settings.is_production else "text"
    level = python_level(settings.log_level)
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": JSONFormatter},
            "text": {"format": _TEXT_FORMAT},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": formatter,
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            # The runner logs its own dispatch outcomes; per-request client noise stays quiet.
            "httpx": {"level": "WARNING"},
            "apscheduler": {"level": "WARNING"},
        },
        "root": {"level": level, "handlers": ["console"]},
    }


def load_logging_config(path: Path) -> dict[str, Any]:
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Invalid logging config YAML root object: {path}")
    return raw


def configure_logging(settings: Settings) -> None:
    if settings.logging_config_path is not None:
        cfg = load_logging_config(settings.logging_config_path)
    else:
        cfg = build_logging_config(settings)
    logging.config.dictConfig(cfg)
