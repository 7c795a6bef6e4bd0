"""
Domain models for duty sessions.

A session is keyed by (subject_id, scope_id). Only one session per key may be
on_duty or paused at a time; off_duty sessions are kept as history.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

DutyStatus = Literal["on_duty", "paused", "off_duty"]
DutyAction = Literal["start", "resume", "pause", "end", "noop"]

ON_DUTY: DutyStatus = "on_duty"
PAUSED: DutyStatus = "paused"
OFF_DUTY: DutyStatus = "off_duty"

ACTIVE_STATUSES: tuple[DutyStatus, ...] = (ON_DUTY, PAUSED)


class DutySession(BaseModel):
    """Domain model for a duty_sessions row."""

    id: int
    subject_id: str
    scope_id: str
    status: DutyStatus
    start_time: datetime
    end_time: datetime | None = None
    total_duration_seconds: int | None = None
    active_duration_seconds: int = Field(default=0, ge=0)
    last_paused_at: datetime | None = None
    last_resumed_at: datetime | None = None

    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


class NewDutySession(BaseModel):
    """Fields required to create a session; the store assigns the id."""

    subject_id: str
    scope_id: str
    status: DutyStatus = ON_DUTY
    start_time: datetime
    active_duration_seconds: int = 0


class DutyTransition(BaseModel):
    """Result of a duty state machine call."""

    action: DutyAction
    session: DutySession
    elapsed_seconds: int
    formatted_duration: str

    @property
    def changed(self) -> bool:
        return self.action != "noop"


class DutyStatusView(BaseModel):
    """Live view of a session for display; duration is computed at read time."""

    session: DutySession
    elapsed_seconds: int
    formatted_duration: str
