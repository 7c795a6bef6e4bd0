"""
Domain models for the identity verification workflow.
"""

from datetime import datetime

from pydantic import BaseModel, model_validator


class ExternalIdentity(BaseModel):
    """A Roblox account as returned by the profile lookup service."""

    external_id: str
    external_name: str
    display_name: str | None = None
    avatar_url: str | None = None


class IdentityRecord(BaseModel):
    """Domain model for an identities row (one per subject)."""

    subject_id: str
    display_name: str
    scope_id: str
    is_verified: bool = False
    external_id: str | None = None
    external_name: str | None = None
    pending_challenge_code: str | None = None
    verified_at: datetime | None = None

    @model_validator(mode="after")
    def _check_binding(self) -> "IdentityRecord":
        if self.is_verified and not (self.external_id and self.external_name and self.verified_at):
            raise ValueError("verified identity requires external_id, external_name and verified_at")
        return self


class VerificationAttempt(BaseModel):
    """Domain model for a verification_attempts row."""

    id: int
    subject_id: str
    scope_id: str
    external_name: str
    external_id: str | None = None
    challenge_code: str
    created_at: datetime
    verified_at: datetime | None = None
    is_verified: bool = False


class NewVerificationAttempt(BaseModel):
    subject_id: str
    scope_id: str
    external_name: str
    external_id: str | None = None
    challenge_code: str
    created_at: datetime


class VerificationProgress(BaseModel):
    """Progress notice sent to the front end before each lookup retry."""

    stage: str  # "lookup" or "check"
    attempt: int
    max_attempts: int
    message: str


class VerificationChallengeResult(BaseModel):
    """Returned by request_verification for display to the subject."""

    subject_id: str
    external_identity: ExternalIdentity
    challenge_code: str
    instructions: list[str]
    attempt_id: int


class VerificationCheckResult(BaseModel):
    """Returned by a successful check_verification."""

    subject_id: str
    scope_id: str
    external_identity: ExternalIdentity
    verified_at: datetime
    via_fallback: bool = False
    already_verified: bool = False
