"""Cron runner: fires HTTP GETs on cron schedules and exposes a small control API."""

__version__ = "0.1.0"
