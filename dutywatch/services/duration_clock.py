"""
Duration accounting for duty sessions.

Pure functions; no I/O, no logging. Active time accrues only while a session is
on_duty. The reference point for the running stretch is the last resume, or the
start of the session if it was never resumed.
"""

import math
from datetime import datetime

from dutywatch.models.domain.duty_domain import OFF_DUTY, ON_DUTY, PAUSED, DutySession


def seconds_between(earlier: datetime, later: datetime) -> int:
    """Whole seconds from `earlier` to `later`, clamped at zero."""
    return max(0, math.floor((later - earlier).total_seconds()))


def running_reference(session: DutySession) -> datetime:
    """Start of the current on_duty stretch."""
    return session.last_resumed_at or session.start_time


def elapsed_active_seconds(session: DutySession, now: datetime) -> int:
    """
    Active seconds for `session` as of `now`.

    Args:
        session: Session in any status
        now: Wall-clock time of the query

    Returns:
        int: Stored accumulator plus the running stretch when on_duty, the
            frozen accumulator when paused, the final total when off_duty
    """
    if session.status == ON_DUTY:
        return session.active_duration_seconds + seconds_between(running_reference(session), now)
    if session.status == PAUSED:
        return session.active_duration_seconds
    if session.status == OFF_DUTY:
        if session.total_duration_seconds is not None:
            return session.total_duration_seconds
        return session.active_duration_seconds
    raise ValueError(f"Unknown duty status: {session.status}")


def _plural(value: int, unit: str) -> str:
    return f"{value} {unit}{'' if value == 1 else 's'}"


def format_human_duration(seconds: int) -> str:
    """
    Render seconds as e.g. "1 hour, 5 minutes" or "0 seconds".

    Zero-valued units are omitted; seconds are shown when nothing else is.
    """
    seconds = max(0, int(seconds))
    if seconds == 0:
        return "0 seconds"

    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)

    parts = []
    if hours:
        parts.append(_plural(hours, "hour"))
    if minutes:
        parts.append(_plural(minutes, "minute"))
    if secs or not parts:
        parts.append(_plural(secs, "second"))

    return ", ".join(parts)
