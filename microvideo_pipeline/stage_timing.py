"""Stage-oriented timing and logging helpers."""

from __future__ import annotations

import logging
from time import perf_counter
from typing import Optional


def format_duration(duration_seconds: float) -> str:
    """Formats duration in a human-readable style for CLI logs."""
    total_milliseconds = max(0, int(round(duration_seconds * 1000.0)))
    if total_milliseconds <= 0:
        return "<1ms"

    total_seconds, milliseconds = divmod(total_milliseconds, 1000)
    minutes, seconds = divmod(total_seconds, 60)
    parts = []
    if minutes > 0:
        parts.append("{}m".format(minutes))
    if seconds > 0 or minutes > 0:
        parts.append("{}s".format(seconds))
    if milliseconds > 0:
        parts.append("{}ms".format(milliseconds))
    return ", ".join(parts)


def _label(stage: str, subject: Optional[str]) -> str:
    return "{} [{}]".format(stage, subject) if subject else stage


def log_stage_started(logger: logging.Logger, stage: str, subject: Optional[str] = None) -> float:
    """Logs stage start and returns the monotonic start timestamp."""
    logger.info("%s started.", _label(stage, subject))
    return perf_counter()


def log_stage_completed(
    logger: logging.Logger,
    stage: str,
    started_at: float,
    subject: Optional[str] = None,
    level: int = logging.INFO,
) -> float:
    """Logs stage completion and returns elapsed seconds."""
    elapsed = perf_counter() - started_at
    logger.log(level, "%s completed in %s.", _label(stage, subject), format_duration(elapsed))
    return elapsed


def log_stage_failed(
    logger: logging.Logger,
    stage: str,
    started_at: float,
    subject: Optional[str] = None,
    level: int = logging.WARNING,
) -> float:
    """Logs stage failure and returns elapsed seconds."""
    elapsed = perf_counter() - started_at
    logger.log(level, "%s failed after %s.", _label(stage, subject), format_duration(elapsed))
    return elapsed
