"""
Challenge codes for Roblox profile verification.

Codes are letters only: Roblox's text filter tends to mask digit runs and
punctuation in profile descriptions. Ambiguous I and O are left out.
"""

import re
import secrets

CODE_PREFIX = "VERIFY"
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ"
CODE_LENGTH = 6

_NON_ALPHANUMERIC = re.compile(r"[^A-Z0-9]")


def generate_code(length: int = CODE_LENGTH) -> str:
    """Return e.g. "VERIFYKQZHTM" using the OS CSPRNG."""
    return CODE_PREFIX + "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_for_match(text: str | None) -> str:
    """Uppercase and drop everything except A-Z and 0-9."""
    if not text:
        return ""
    return _NON_ALPHANUMERIC.sub("", text.upper())


def code_matches(profile_text: str | None, challenge_code: str) -> bool:
    """
    True when the normalized code appears in the normalized profile text.

    Tolerates whitespace, punctuation and case changes introduced when the
    code is pasted into a profile, e.g. "verify - ab 12" matches "VERIFY-AB12".
    """
    code = normalize_for_match(challenge_code)
    if not code:
        return False
    return code in normalize_for_match(profile_text)


def verification_instructions(challenge_code: str) -> list[str]:
    return [
        "Go to your Roblox profile",
        "Click the pencil icon to edit your profile",
        f"Copy the code {challenge_code}",
        "Paste it into your About section",
        "If Roblox filters the code, try typing it manually without spaces",
        "Click Save",
        "Run the verification check",
    ]
