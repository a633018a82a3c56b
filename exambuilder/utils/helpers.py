"""Small, dependency-light utilities used across the app."""

from __future__ import annotations

import logging

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | int = "INFO") -> None:
    """Install a basic root handler once; later calls only adjust the level."""

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=_LOG_FORMAT)
    root.setLevel(level)


def format_duration(seconds: int | float) -> str:
    """`3723` -> `"1h 2m 3s"`, `123` -> `"2m 3s"`, `3` -> `"3s"`."""

    total = max(0, int(seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def format_clock(seconds: int | float | None) -> str:
    """Countdown display: `MM:SS`, or `H:MM:SS` past an hour."""

    if seconds is None:
        return ""
    total = max(0, int(seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def percentage(total_marks: float, max_marks: float) -> int:
    if not max_marks:
        return 0
    return round(total_marks / max_marks * 100)


def grade_label(percent: float) -> str:
    if percent >= 90:
        return "Excellent"
    if percent >= 80:
        return "Good"
    if percent >= 70:
        return "Satisfactory"
    if percent >= 60:
        return "Pass"
    return "Needs Improvement"
