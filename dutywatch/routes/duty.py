"""
Duty API Routes
HTTP endpoints driving the duty state machine for the chat front end.
"""

from fastapi import APIRouter, Depends, Query

from dutywatch.dependencies import get_duty_service, resolve_scope
from dutywatch.infrastructure.observability.logging import get_logger
from dutywatch.models.api.duty_response import (
    ActiveSessionsResponse,
    DutyHistoryResponse,
    DutySessionResponse,
    DutyStatusResponse,
    DutyTransitionResponse,
)
from dutywatch.services.duty_session_service import DutySessionService

logger = get_logger(__name__)

router = APIRouter(prefix="/duty", tags=["duty"])


@router.get("/{scope_id}/sessions/active", response_model=ActiveSessionsResponse)
async def list_active_sessions(
    scope_id: str, service: DutySessionService = Depends(get_duty_service)
):
    """All on_duty and paused sessions in a community."""
    scope_id = resolve_scope(scope_id)
    views = await service.list_active(scope_id)
    sessions = [DutySessionResponse.from_view(view) for view in views]
    return ActiveSessionsResponse(scope_id=scope_id, sessions=sessions, total_count=len(sessions))


@router.get("/{scope_id}/{subject_id}", response_model=DutyStatusResponse)
async def get_duty_status(
    scope_id: str, subject_id: str, service: DutySessionService = Depends(get_duty_service)
):
    view = await service.get_status(subject_id, resolve_scope(scope_id))
    if view is None:
        return DutyStatusResponse(on_duty=False)
    return DutyStatusResponse(on_duty=True, session=DutySessionResponse.from_view(view))


@router.get("/{scope_id}/{subject_id}/history", response_model=DutyHistoryResponse)
async def get_duty_history(
    scope_id: str,
    subject_id: str,
    limit: int = Query(default=10, ge=1, le=100, description="Sessions to return (1-100)"),
    service: DutySessionService = Depends(get_duty_service),
):
    """Completed sessions, most recent first."""
    scope_id = resolve_scope(scope_id)
    views = await service.get_history(subject_id, scope_id, limit)
    return DutyHistoryResponse(
        subject_id=subject_id,
        scope_id=scope_id,
        sessions=[DutySessionResponse.from_view(view) for view in views],
    )


@router.post("/{scope_id}/{subject_id}/start", response_model=DutyTransitionResponse)
async def start_duty(
    scope_id: str, subject_id: str, service: DutySessionService = Depends(get_duty_service)
):
    """Go on duty, or resume a paused session."""
    transition = await service.start(subject_id, resolve_scope(scope_id))
    return DutyTransitionResponse.from_transition(transition)


@router.post("/{scope_id}/{subject_id}/pause", response_model=DutyTransitionResponse)
async def pause_duty(
    scope_id: str, subject_id: str, service: DutySessionService = Depends(get_duty_service)
):
    transition = await service.pause(subject_id, resolve_scope(scope_id))
    return DutyTransitionResponse.from_transition(transition)


@router.post("/{scope_id}/{subject_id}/resume", response_model=DutyTransitionResponse)
async def resume_duty(
    scope_id: str, subject_id: str, service: DutySessionService = Depends(get_duty_service)
):
    transition = await service.resume(subject_id, resolve_scope(scope_id))
    return DutyTransitionResponse.from_transition(transition)


@router.post("/{scope_id}/{subject_id}/end", response_model=DutyTransitionResponse)
async def end_duty(
    scope_id: str, subject_id: str, service: DutySessionService = Depends(get_duty_service)
):
    """Go off duty and report the total active time."""
    transition = await service.end(subject_id, resolve_scope(scope_id))
    return DutyTransitionResponse.from_transition(transition)
