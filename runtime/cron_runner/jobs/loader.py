"""Job definition loader (YAML -> JobDescriptor list).

The job list is configuration, not state: it is read once at startup and never
mutated. A job's identity is its position in the list.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

import yaml

from cron_runner.errors import ConfigIssue, ConfigurationError


@dataclass(frozen=True)
class JobDescriptor:
    name: str
    schedule: str
    path: str
    enabled: bool = True


def _descriptor_from_raw(i: int, raw: Any, issues: list[ConfigIssue]) -> JobDescriptor | None:
    key = f"jobs[{i}]"
    if not isinstance(raw, dict):
        issues.append(ConfigIssue(key, "expected a mapping"))
        return None

    name = raw.get("name")
    schedule = raw.get("schedule")
    # `path` is accepted as an alias of `endpoint`.
    path = raw.get("endpoint", raw.get("path"))
    enabled = raw.get("enabled", True)

    ok = True
    if not isinstance(name, str) or not name.strip():
        issues.append(ConfigIssue(f"{key}.name", "must be a non-empty string"))
        ok = False
    # Schedule content is validated at registration time, not here.
    if not isinstance(schedule, str):
        issues.append(ConfigIssue(f"{key}.schedule", "must be a string"))
        ok = False
    if not isinstance(path, str):
        issues.append(ConfigIssue(f"{key}.endpoint", "must be a string"))
        ok = False
    if not isinstance(enabled, bool):
        issues.append(ConfigIssue(f"{key}.enabled", "must be a boolean"))
        ok = False
    if not ok:
        return None

    return JobDescriptor(name=name.strip(), schedule=schedule.strip(), path=path.strip(), enabled=enabled)


def parse_job_descriptors(raw_jobs: Iterable[Any]) -> list[JobDescriptor]:
    issues: list[ConfigIssue] = []
    out: list[JobDescriptor] = []
    for i, raw in enumerate(raw_jobs):
        d = _descriptor_from_raw(i, raw, issues)
        if d is not None:
            out.append(d)
    if issues:
        raise ConfigurationError("Invalid job definitions", issues)
    return out


def load_job_descriptors(path: Path) -> list[JobDescriptor]:
    if not path.exists():
        raise ConfigurationError(f"Missing jobs file: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse YAML: {path}: {e}") from e
    if not isinstance(data, dict) or not isinstance(data.get("jobs"), list):
        raise ConfigurationError(f"Invalid jobs file {path} (expected an object with a 'jobs' list)")
    return parse_job_descriptors(data["jobs"])
