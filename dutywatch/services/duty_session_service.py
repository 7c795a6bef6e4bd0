"""
Duty session state machine.

States per (subject_id, scope_id): none -> on_duty <-> paused -> off_duty.
off_duty is terminal for a session; a later start creates a new one.

All transitions and status reads for one key run under that key's lock so
a pause and a concurrent status query never observe a half-applied update.
"""

from collections.abc import Callable
from datetime import UTC, datetime

from dutywatch.infrastructure.observability.logging import get_logger, log_state_transition
from dutywatch.models.domain.duty_domain import (
    OFF_DUTY,
    ON_DUTY,
    PAUSED,
    DutyAction,
    DutySession,
    DutyStatusView,
    DutyTransition,
    NewDutySession,
)
from dutywatch.models.domain.events import duty_event
from dutywatch.repositories.base import SessionStore
from dutywatch.services.broadcaster import UpdateBroadcaster
from dutywatch.services.duration_clock import (
    elapsed_active_seconds,
    format_human_duration,
    running_reference,
    seconds_between,
)
from dutywatch.services.errors import NoActiveSessionError
from dutywatch.services.locks import KeyedLocks

logger = get_logger(__name__)

NowFn = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


class DutySessionService:
    """
    Service for duty session transitions.

    Owns all DutySession mutation. Emits exactly one event per state change
    and none for no-op calls.
    """

    def __init__(
        self,
        store: SessionStore,
        broadcaster: UpdateBroadcaster,
        now_fn: NowFn = utc_now,
    ):
        self.store = store
        self.broadcaster = broadcaster
        self.now_fn = now_fn
        self._locks = KeyedLocks()

    def _result(self, action: DutyAction, session: DutySession, now: datetime) -> DutyTransition:
        elapsed = elapsed_active_seconds(session, now)
        return DutyTransition(
            action=action,
            session=session,
            elapsed_seconds=elapsed,
            formatted_duration=format_human_duration(elapsed),
        )

    def _emit(self, transition: DutyTransition) -> None:
        session = transition.session
        log_state_transition(
            transition.action,
            session.subject_id,
            session.scope_id,
            session_id=session.id,
            status=session.status,
            active_duration_seconds=session.active_duration_seconds,
        )
        self.broadcaster.publish(duty_event(transition.action, session, transition.elapsed_seconds))

    async def _require_active(self, subject_id: str, scope_id: str) -> DutySession:
        session = await self.store.get_active_session(subject_id, scope_id)
        if session is None:
            logger.info("No active duty session", subject_id=subject_id, scope_id=scope_id)
            raise NoActiveSessionError(subject_id, scope_id)
        return session

    async def _apply(self, session: DutySession, **fields) -> DutySession:
        updated = await self.store.update_session(session.id, **fields)
        if updated is None:
            # Row vanished between read and write
            raise NoActiveSessionError(session.subject_id, session.scope_id)
        return updated

    async def _resume_locked(self, session: DutySession, now: datetime) -> DutyTransition:
        updated = await self._apply(
            session, status=ON_DUTY, last_paused_at=None, last_resumed_at=now
        )
        transition = self._result("resume", updated, now)
        self._emit(transition)
        return transition

    async def start(self, subject_id: str, scope_id: str) -> DutyTransition:
        """
        Start a duty session, or resume a paused one.

        Args:
            subject_id: Chat user id
            scope_id: Community id

        Returns:
            DutyTransition: action "start", "resume" or "noop" when already on duty
        """
        async with self._locks.hold((subject_id, scope_id)):
            now = self.now_fn()
            session = await self.store.get_active_session(subject_id, scope_id)

            if session is None:
                created = await self.store.create_session(
                    NewDutySession(subject_id=subject_id, scope_id=scope_id, start_time=now)
                )
                transition = self._result("start", created, now)
                self._emit(transition)
                return transition

            if session.status == PAUSED:
                return await self._resume_locked(session, now)

            if session.status == ON_DUTY:
                return self._result("noop", session, now)

            raise ValueError(f"Unexpected active status: {session.status}")

    async def resume(self, subject_id: str, scope_id: str) -> DutyTransition:
        """Resume a paused session; no-op when already on duty."""
        async with self._locks.hold((subject_id, scope_id)):
            now = self.now_fn()
            session = await self._require_active(subject_id, scope_id)

            if session.status == PAUSED:
                return await self._resume_locked(session, now)
            if session.status == ON_DUTY:
                return self._result("noop", session, now)

            raise ValueError(f"Unexpected active status: {session.status}")

    async def pause(self, subject_id: str, scope_id: str) -> DutyTransition:
        """
        Pause an on-duty session, banking the running stretch.

        Pausing an already paused session re-displays it without accruing time.

        Raises:
            NoActiveSessionError: If the subject has no on_duty/paused session
        """
        async with self._locks.hold((subject_id, scope_id)):
            now = self.now_fn()
            session = await self._require_active(subject_id, scope_id)

            if session.status == ON_DUTY:
                delta = seconds_between(running_reference(session), now)
                updated = await self._apply(
                    session,
                    status=PAUSED,
                    active_duration_seconds=session.active_duration_seconds + delta,
                    last_paused_at=now,
                )
                transition = self._result("pause", updated, now)
                self._emit(transition)
                return transition

            if session.status == PAUSED:
                return self._result("noop", session, now)

            raise ValueError(f"Unexpected active status: {session.status}")

    async def end(self, subject_id: str, scope_id: str) -> DutyTransition:
        """
        Go off duty, freezing the total active duration.

        Raises:
            NoActiveSessionError: If the subject has no on_duty/paused session
        """
        async with self._locks.hold((subject_id, scope_id)):
            now = self.now_fn()
            session = await self._require_active(subject_id, scope_id)

            total = elapsed_active_seconds(session, now)
            updated = await self._apply(
                session,
                status=OFF_DUTY,
                end_time=now,
                total_duration_seconds=total,
                active_duration_seconds=max(total, session.active_duration_seconds),
                last_paused_at=None,
            )
            transition = self._result("end", updated, now)
            self._emit(transition)
            return transition

    async def get_status(self, subject_id: str, scope_id: str) -> DutyStatusView | None:
        """Current session with duration computed now, or None when off duty."""
        async with self._locks.hold((subject_id, scope_id)):
            session = await self.store.get_active_session(subject_id, scope_id)
            if session is None:
                return None
            return self._view(session, self.now_fn())

    async def list_active(self, scope_id: str) -> list[DutyStatusView]:
        now = self.now_fn()
        sessions = await self.store.list_active_sessions(scope_id)
        return [self._view(session, now) for session in sessions]

    async def get_history(
        self, subject_id: str, scope_id: str, limit: int = 10
    ) -> list[DutyStatusView]:
        now = self.now_fn()
        sessions = await self.store.get_session_history(subject_id, scope_id, limit)
        return [self._view(session, now) for session in sessions]

    def _view(self, session: DutySession, now: datetime) -> DutyStatusView:
        elapsed = elapsed_active_seconds(session, now)
        return DutyStatusView(
            session=session,
            elapsed_seconds=elapsed,
            formatted_duration=format_human_duration(elapsed),
        )
