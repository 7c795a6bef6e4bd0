"""
Duty API response models.
Used by routes for output formatting.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from dutywatch.models.domain.duty_domain import DutyStatusView, DutyTransition


class DutySessionResponse(BaseModel):
    """A duty session with its duration computed at response time."""

    session_id: int = Field(..., description="Session ID")
    subject_id: str = Field(..., description="Chat user ID")
    scope_id: str = Field(..., description="Community ID")
    status: str = Field(..., description="on_duty, paused or off_duty")
    start_time: datetime = Field(..., description="When the session started")
    end_time: datetime | None = Field(None, description="When the session ended")
    last_paused_at: datetime | None = Field(None, description="Start of the current pause")
    elapsed_seconds: int = Field(..., description="Active seconds so far")
    formatted_duration: str = Field(..., description="Human readable duration")

    @classmethod
    def from_view(cls, view: DutyStatusView) -> "DutySessionResponse":
        session = view.session
        return cls(
            session_id=session.id,
            subject_id=session.subject_id,
            scope_id=session.scope_id,
            status=session.status,
            start_time=session.start_time,
            end_time=session.end_time,
            last_paused_at=session.last_paused_at,
            elapsed_seconds=view.elapsed_seconds,
            formatted_duration=view.formatted_duration,
        )


class DutyTransitionResponse(BaseModel):
    """Result of a start/pause/resume/end call."""

    action: str = Field(..., description="start, pause, resume, end or noop")
    changed: bool = Field(..., description="False when the call was a no-op")
    message: str = Field(..., description="Text for the chat front end")
    session: DutySessionResponse

    @classmethod
    def from_transition(cls, transition: DutyTransition) -> "DutyTransitionResponse":
        view = DutyStatusView(
            session=transition.session,
            elapsed_seconds=transition.elapsed_seconds,
            formatted_duration=transition.formatted_duration,
        )
        return cls(
            action=transition.action,
            changed=transition.changed,
            message=_message(transition),
            session=DutySessionResponse.from_view(view),
        )


class DutyStatusResponse(BaseModel):
    on_duty: bool = Field(..., description="True when an on_duty or paused session exists")
    session: DutySessionResponse | None = None


class ActiveSessionsResponse(BaseModel):
    scope_id: str
    sessions: list[DutySessionResponse]
    total_count: int


class DutyHistoryResponse(BaseModel):
    subject_id: str
    scope_id: str
    sessions: list[DutySessionResponse]


def _message(transition: DutyTransition) -> str:
    duration = transition.formatted_duration
    status = transition.session.status
    if transition.action == "start":
        return "You are now on duty."
    if transition.action == "resume":
        return f"Welcome back! You are on duty again. Time so far: {duration}."
    if transition.action == "pause":
        return f"Duty paused. Time so far: {duration}."
    if transition.action == "end":
        return f"You are now off duty. Total time: {duration}."
    if status == "paused":
        return f"Your duty is already paused. Time so far: {duration}."
    return f"You are already on duty. Time so far: {duration}."
