"""
Domain models shared by the engines, stores and routes.
"""

from .duty_domain import (
    ACTIVE_STATUSES,
    OFF_DUTY,
    ON_DUTY,
    PAUSED,
    DutySession,
    DutyStatus,
    DutyStatusView,
    DutyTransition,
    NewDutySession,
)
from .events import UpdateEvent, duty_event, verify_event
from .identity_domain import (
    ExternalIdentity,
    IdentityRecord,
    NewVerificationAttempt,
    VerificationAttempt,
    VerificationChallengeResult,
    VerificationCheckResult,
    VerificationProgress,
)

__all__ = [
    "ACTIVE_STATUSES",
    "OFF_DUTY",
    "ON_DUTY",
    "PAUSED",
    "DutySession",
    "DutyStatus",
    "DutyStatusView",
    "DutyTransition",
    "NewDutySession",
    "UpdateEvent",
    "duty_event",
    "verify_event",
    "ExternalIdentity",
    "IdentityRecord",
    "NewVerificationAttempt",
    "VerificationAttempt",
    "VerificationChallengeResult",
    "VerificationCheckResult",
    "VerificationProgress",
]
