"""
Events pushed to dashboard observers on every state transition.
"""

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from dutywatch.models.domain.duty_domain import DutySession
from dutywatch.models.domain.identity_domain import ExternalIdentity

EventKind = Literal["start", "pause", "resume", "end", "verify"]

DUTY_EVENT_KINDS: frozenset[str] = frozenset({"start", "pause", "resume", "end"})


class UpdateEvent(BaseModel):
    """Tagged update; `kind` selects the shape of `payload`."""

    kind: EventKind
    subject_id: str
    scope_id: str
    payload: dict[str, Any] = Field(default_factory=dict)
    emitted_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def channel(self) -> str:
        if self.kind in DUTY_EVENT_KINDS:
            return "duty_update"
        if self.kind == "verify":
            return "verification_update"
        raise ValueError(f"Unhandled event kind: {self.kind}")

    def to_message(self) -> dict[str, Any]:
        """JSON-ready message for the WebSocket transport."""
        return {
            "type": self.channel,
            "action": self.kind,
            "subject_id": self.subject_id,
            "scope_id": self.scope_id,
            "payload": self.payload,
            "emitted_at": self.emitted_at.isoformat(),
        }


def duty_event(kind: EventKind, session: DutySession, elapsed_seconds: int) -> UpdateEvent:
    if kind not in DUTY_EVENT_KINDS:
        raise ValueError(f"Not a duty event kind: {kind}")
    return UpdateEvent(
        kind=kind,
        subject_id=session.subject_id,
        scope_id=session.scope_id,
        payload={
            "session": session.model_dump(mode="json"),
            "elapsed_seconds": elapsed_seconds,
        },
    )


def verify_event(
    subject_id: str, scope_id: str, identity: ExternalIdentity, via_fallback: bool
) -> UpdateEvent:
    return UpdateEvent(
        kind="verify",
        subject_id=subject_id,
        scope_id=scope_id,
        payload={
            "external_id": identity.external_id,
            "external_name": identity.external_name,
            "via_fallback": via_fallback,
        },
    )
