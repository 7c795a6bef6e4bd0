"""
Verification API request models.
"""

from pydantic import BaseModel, Field


class VerificationStartRequest(BaseModel):
    """Claim a Roblox account for a chat user."""

    subject_id: str = Field(..., min_length=1, description="Chat user ID")
    scope_id: str | None = Field(default=None, description="Community ID (default scope if omitted)")
    external_name: str = Field(
        ..., min_length=3, max_length=20, description="Roblox username being claimed"
    )
    display_name: str | None = Field(default=None, max_length=100, description="Chat display name")
