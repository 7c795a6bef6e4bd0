"""
Verification API Routes
HTTP endpoints for linking chat users to Roblox accounts.

Progress callbacks are not exposed over HTTP; retries happen within the
request and observers see the final verify event on /ws.
"""

from fastapi import APIRouter, Depends

from dutywatch.dependencies import get_verification_service, resolve_scope
from dutywatch.infrastructure.observability.logging import get_logger
from dutywatch.models.api.verification_request import VerificationStartRequest
from dutywatch.models.api.verification_response import (
    ErrorResponse,
    IdentityStatusResponse,
    VerificationCancelResponse,
    VerificationChallengeResponse,
    VerificationCheckResponse,
)
from dutywatch.services.verification.service import VerificationService

logger = get_logger(__name__)

router = APIRouter(
    prefix="/verification",
    tags=["verification"],
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)


@router.post("/request", response_model=VerificationChallengeResponse)
async def request_verification(
    request: VerificationStartRequest,
    service: VerificationService = Depends(get_verification_service),
):
    """Resolve the Roblox username and issue a challenge code."""
    result = await service.request_verification(
        request.subject_id,
        resolve_scope(request.scope_id),
        request.external_name,
        display_name=request.display_name,
    )
    return VerificationChallengeResponse(
        subject_id=result.subject_id,
        challenge_code=result.challenge_code,
        instructions=result.instructions,
        external_identity=result.external_identity,
        attempt_id=result.attempt_id,
    )


@router.post(
    "/{subject_id}/check",
    response_model=VerificationCheckResponse,
    responses={422: {"model": ErrorResponse}},
)
async def check_verification(
    subject_id: str, service: VerificationService = Depends(get_verification_service)
):
    """Look for the challenge code in the subject's Roblox profile."""
    result = await service.check_verification(subject_id)
    return VerificationCheckResponse(
        subject_id=result.subject_id,
        scope_id=result.scope_id,
        external_identity=result.external_identity,
        verified_at=result.verified_at,
        via_fallback=result.via_fallback,
        already_verified=result.already_verified,
    )


@router.post("/{subject_id}/cancel", response_model=VerificationCancelResponse)
async def cancel_verification(
    subject_id: str, service: VerificationService = Depends(get_verification_service)
):
    return VerificationCancelResponse(**await service.cancel_verification(subject_id))


@router.post("/{subject_id}/reset", response_model=IdentityStatusResponse)
async def reset_verification(
    subject_id: str, service: VerificationService = Depends(get_verification_service)
):
    """Unlink the Roblox account so another one can be verified."""
    record = await service.reset_verification(subject_id)
    return IdentityStatusResponse.from_record(subject_id, record)


@router.get("/{subject_id}", response_model=IdentityStatusResponse)
async def get_verification_status(
    subject_id: str, service: VerificationService = Depends(get_verification_service)
):
    record = await service.get_identity(subject_id)
    return IdentityStatusResponse.from_record(subject_id, record)
