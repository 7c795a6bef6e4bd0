"""
Verification API response models.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from dutywatch.models.domain.identity_domain import ExternalIdentity, IdentityRecord


class VerificationChallengeResponse(BaseModel):
    subject_id: str
    challenge_code: str = Field(..., description="Code to paste into the Roblox profile")
    instructions: list[str]
    external_identity: ExternalIdentity
    attempt_id: int


class VerificationCheckResponse(BaseModel):
    subject_id: str
    scope_id: str
    verified: bool = True
    external_identity: ExternalIdentity
    verified_at: datetime
    via_fallback: bool = Field(
        default=False, description="Verified without reading the profile (Roblox unreachable)"
    )
    already_verified: bool = False


class IdentityStatusResponse(BaseModel):
    """Verification status of one chat user."""

    subject_id: str
    is_verified: bool
    external_id: str | None = None
    external_name: str | None = None
    verified_at: datetime | None = None
    pending: bool = Field(default=False, description="A challenge code is outstanding")

    @classmethod
    def from_record(cls, subject_id: str, record: IdentityRecord | None) -> "IdentityStatusResponse":
        if record is None:
            return cls(subject_id=subject_id, is_verified=False)
        return cls(
            subject_id=subject_id,
            is_verified=record.is_verified,
            external_id=record.external_id,
            external_name=record.external_name,
            verified_at=record.verified_at,
            pending=record.pending_challenge_code is not None,
        )


class VerificationCancelResponse(BaseModel):
    subject_id: str
    cancelled: bool
    had_pending_attempt: bool
    message: str


class ErrorResponse(BaseModel):
    """Body of every engine error response."""

    error: str = Field(..., description="Machine-readable error code")
    detail: str = Field(..., description="Message for the subject")
    recoverable: bool
    guidance: list[str] | None = None
