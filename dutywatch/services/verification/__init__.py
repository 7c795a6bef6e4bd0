from dutywatch.services.verification.challenge import (
    code_matches,
    generate_code,
    verification_instructions,
)
from dutywatch.services.verification.service import (
    ProfileLookup,
    ProgressCallback,
    VerificationService,
)

__all__ = [
    "ProfileLookup",
    "ProgressCallback",
    "VerificationService",
    "code_matches",
    "generate_code",
    "verification_instructions",
]
