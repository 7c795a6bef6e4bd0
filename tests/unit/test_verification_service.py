"""
Tests for the Roblox verification workflow.
"""

import pytest

from dutywatch.services.errors import (
    AlreadyVerifiedError,
    CodeNotFoundError,
    CouldNotVerifyError,
    ExternalIdentityNotFoundError,
    ExternalServiceUnavailableError,
    NoPendingAttemptError,
    NotVerifiedError,
)
from dutywatch.services.profile_lookup.errors import (
    AuthInvalidError,
    CooldownActiveError,
    ProfileLookupError,
    ProfileNotFoundError,
    RateLimitedError,
    TransientLookupError,
)
from dutywatch.services.verification.service import VerificationService


async def _request(service, subject_id="U1"):
    return await service.request_verification(subject_id, "G1", "Builderman", display_name="Alice")


@pytest.mark.asyncio
async def test_request_issues_challenge(verification_service, store, broadcaster):
    result = await _request(verification_service)

    assert result.challenge_code.startswith("VERIFY")
    assert len(result.challenge_code) == 12
    assert result.external_identity.external_id == "156"
    assert result.external_identity.avatar_url == "https://tr.rbxcdn.com/avatar.png"
    assert any(result.challenge_code in step for step in result.instructions)

    identity = await store.get_identity("U1")
    assert identity.pending_challenge_code == result.challenge_code
    assert identity.display_name == "Alice"
    assert identity.is_verified is False

    attempt = await store.get_latest_attempt("U1")
    assert attempt.id == result.attempt_id
    assert attempt.external_id == "156"
    assert attempt.is_verified is False
    assert broadcaster.events == []


@pytest.mark.asyncio
async def test_lookup_retries_are_bounded(make_verification_service, make_lookup, sleep):
    lookup = make_lookup(find=[None])
    service = make_verification_service(lookup)
    progress = []

    async def on_progress(update):
        progress.append(update)

    with pytest.raises(ExternalIdentityNotFoundError) as exc:
        await service.request_verification("U1", "G1", "Nobody", on_progress=on_progress)

    assert len(lookup.find_calls) == 3
    assert exc.value.attempts == 3
    assert sleep.delays == [3.0, 6.0]
    assert [p.attempt for p in progress] == [2, 3]
    assert progress[0].message.startswith("Retry 1/2")


@pytest.mark.asyncio
async def test_lookup_succeeds_on_later_attempt(make_verification_service, make_lookup, make_user):
    lookup = make_lookup(find=[None, RateLimitedError(), make_user()])
    service = make_verification_service(lookup)

    result = await _request(service)

    assert len(lookup.find_calls) == 3
    assert result.external_identity.external_name == "Builderman"


@pytest.mark.asyncio
async def test_lookup_errors_map_to_service_unavailable(make_verification_service, make_lookup):
    lookup = make_lookup(find=[TransientLookupError("timeout")])
    service = make_verification_service(lookup)

    with pytest.raises(ExternalServiceUnavailableError) as exc:
        await _request(service)

    assert len(lookup.find_calls) == 3
    assert exc.value.last_error == "timeout"
    assert exc.value.recoverable is True


@pytest.mark.asyncio
async def test_non_recoverable_lookup_error_stops_retrying(make_verification_service, make_lookup):
    lookup = make_lookup(find=[AuthInvalidError()])
    service = make_verification_service(lookup)

    with pytest.raises(ExternalServiceUnavailableError):
        await _request(service)

    assert len(lookup.find_calls) == 1


@pytest.mark.asyncio
async def test_not_found_error_counts_as_no_match(make_verification_service, make_lookup):
    lookup = make_lookup(find=[ProfileNotFoundError()])
    service = make_verification_service(lookup)

    with pytest.raises(ExternalIdentityNotFoundError):
        await _request(service)


@pytest.mark.asyncio
async def test_check_succeeds_when_code_in_profile(verification_service, lookup, store, broadcaster):
    challenge = await _request(verification_service)
    code = challenge.challenge_code
    lookup.profile_script = [f"hi! {code[:6].lower()} - {code[6:]} thanks"]

    result = await verification_service.check_verification("U1")

    assert result.via_fallback is False
    assert result.external_identity.external_id == "156"

    identity = await store.get_identity("U1")
    assert identity.is_verified is True
    assert identity.external_name == "Builderman"
    assert identity.pending_challenge_code is None
    assert (await store.get_latest_attempt("U1")).is_verified is True

    assert broadcaster.kinds() == ["verify"]
    assert broadcaster.events[0].payload["via_fallback"] is False


@pytest.mark.asyncio
async def test_check_without_code_fails_after_retries(
    verification_service, lookup, store, broadcaster, sleep
):
    await _request(verification_service)
    lookup.profile_script = ["I like trains"]

    with pytest.raises(CodeNotFoundError) as exc:
        await verification_service.check_verification("U1")

    assert len(lookup.profile_calls) == 3
    assert exc.value.guidance
    assert sleep.delays == [3.0, 6.0]
    assert (await store.get_identity("U1")).is_verified is False
    assert broadcaster.events == []


@pytest.mark.asyncio
async def test_check_recovers_from_transient_failure(verification_service, lookup):
    challenge = await _request(verification_service)
    lookup.profile_script = [TransientLookupError("reset"), challenge.challenge_code]

    result = await verification_service.check_verification("U1")

    assert len(lookup.profile_calls) == 2
    assert result.via_fallback is False


@pytest.mark.asyncio
async def test_check_falls_back_when_profile_unreachable(verification_service, lookup, broadcaster):
    await _request(verification_service)
    lookup.profile_script = [RateLimitedError()]

    result = await verification_service.check_verification("U1")

    assert len(lookup.profile_calls) == 3
    assert result.via_fallback is True
    assert broadcaster.events[0].payload["via_fallback"] is True


@pytest.mark.asyncio
async def test_check_refused_by_cooldown_does_not_fall_back(verification_service, lookup, store):
    await _request(verification_service)
    lookup.profile_script = [CooldownActiveError(retry_after=30.0)]

    with pytest.raises(ExternalServiceUnavailableError):
        await verification_service.check_verification("U1")

    assert len(lookup.profile_calls) == 3
    assert (await store.get_identity("U1")).is_verified is False


@pytest.mark.asyncio
async def test_check_stops_on_rejected_request(verification_service, lookup, store, sleep):
    await _request(verification_service)
    lookup.profile_script = [ProfileLookupError("HTTP 400", status_code=400, recoverable=False)]

    with pytest.raises(ExternalServiceUnavailableError):
        await verification_service.check_verification("U1")

    assert len(lookup.profile_calls) == 1
    assert sleep.delays == []
    assert (await store.get_identity("U1")).is_verified is False


@pytest.mark.asyncio
async def test_check_falls_back_after_cooldown_and_real_failure(verification_service, lookup):
    await _request(verification_service)
    lookup.profile_script = [CooldownActiveError(retry_after=2.0), TransientLookupError("timeout")]

    result = await verification_service.check_verification("U1")

    assert result.via_fallback is True


@pytest.mark.asyncio
async def test_check_without_fallback_raises(make_verification_service, make_lookup, make_user, store):
    lookup = make_lookup(find=[make_user()], profile=[TransientLookupError("down")])
    service = make_verification_service(lookup, allow_fallback=False)
    await _request(service)

    with pytest.raises(CouldNotVerifyError):
        await service.check_verification("U1")

    assert (await store.get_identity("U1")).is_verified is False


@pytest.mark.asyncio
async def test_check_deleted_account_is_not_verified(verification_service, lookup, store):
    await _request(verification_service)
    lookup.profile_script = [ProfileNotFoundError()]

    with pytest.raises(ExternalIdentityNotFoundError):
        await verification_service.check_verification("U1")

    assert (await store.get_identity("U1")).is_verified is False


@pytest.mark.asyncio
async def test_check_without_attempt_raises(verification_service):
    with pytest.raises(NoPendingAttemptError):
        await verification_service.check_verification("U1")


@pytest.mark.asyncio
async def test_recheck_is_idempotent(verification_service, lookup, broadcaster):
    challenge = await _request(verification_service)
    lookup.profile_script = [challenge.challenge_code]
    first = await verification_service.check_verification("U1")

    second = await verification_service.check_verification("U1")

    assert second.already_verified is True
    assert second.external_identity.external_id == first.external_identity.external_id
    assert broadcaster.kinds() == ["verify"]
    assert len(lookup.profile_calls) == 1


@pytest.mark.asyncio
async def test_request_when_verified_raises(verification_service, lookup):
    challenge = await _request(verification_service)
    lookup.profile_script = [challenge.challenge_code]
    await verification_service.check_verification("U1")

    with pytest.raises(AlreadyVerifiedError) as exc:
        await _request(verification_service)

    assert exc.value.external_name == "Builderman"


@pytest.mark.asyncio
async def test_reset_allows_new_verification(verification_service, lookup, store):
    challenge = await _request(verification_service)
    lookup.profile_script = [challenge.challenge_code]
    await verification_service.check_verification("U1")

    cleared = await verification_service.reset_verification("U1")

    assert cleared.is_verified is False
    assert cleared.external_id is None
    assert (await store.get_identity("U1")).verified_at is None

    with pytest.raises(NoPendingAttemptError):
        await verification_service.check_verification("U1")

    again = await _request(verification_service)
    assert again.attempt_id != challenge.attempt_id


@pytest.mark.asyncio
async def test_reset_when_not_verified_raises(verification_service):
    with pytest.raises(NotVerifiedError):
        await verification_service.reset_verification("U1")


@pytest.mark.asyncio
async def test_cancel_acknowledges(verification_service):
    nothing = await verification_service.cancel_verification("U1")
    assert nothing["had_pending_attempt"] is False

    await _request(verification_service)
    pending = await verification_service.cancel_verification("U1")

    assert pending["cancelled"] is True
    assert pending["had_pending_attempt"] is True


@pytest.mark.asyncio
async def test_failing_progress_callback_does_not_abort(
    make_verification_service, make_lookup, make_user
):
    lookup = make_lookup(find=[None, make_user()])
    service = make_verification_service(lookup)

    async def broken(update):
        raise RuntimeError("interaction expired")

    result = await service.request_verification("U1", "G1", "Builderman", on_progress=broken)

    assert result.external_identity.external_id == "156"


@pytest.mark.asyncio
async def test_check_resolves_missing_external_id(verification_service, lookup, store):
    challenge = await _request(verification_service)
    await store.update_attempt(challenge.attempt_id, external_id=None)
    lookup.profile_script = [challenge.challenge_code]
    lookup.find_calls.clear()

    result = await verification_service.check_verification("U1")

    assert lookup.find_calls == ["Builderman"]
    assert result.external_identity.external_id == "156"


@pytest.mark.asyncio
async def test_always_rate_limited_fails_after_configured_attempts(
    make_verification_service, make_lookup
):
    lookup = make_lookup(find=[RateLimitedError(retry_after=30)])
    service = make_verification_service(lookup)

    with pytest.raises(ExternalServiceUnavailableError) as exc:
        await _request(service)

    assert len(lookup.find_calls) == 3
    assert exc.value.attempts == 3


@pytest.mark.asyncio
async def test_code_not_found_then_added(
    make_verification_service, make_lookup, make_user, store, broadcaster
):
    lookup = make_lookup(find=[None, make_user()], profile=["nothing yet"])
    service = make_verification_service(lookup)
    challenge = await _request(service)
    assert len(lookup.find_calls) == 2

    with pytest.raises(CodeNotFoundError):
        await service.check_verification("U1")

    attempt = await store.get_latest_attempt("U1")
    assert attempt.id == challenge.attempt_id
    assert attempt.challenge_code == challenge.challenge_code
    assert attempt.is_verified is False

    lookup.profile_script = [challenge.challenge_code]
    result = await service.check_verification("U1")

    assert result.external_identity.external_name == "Builderman"
    assert (await store.get_identity("U1")).is_verified is True
    assert broadcaster.kinds() == ["verify"]


def test_explicit_zero_attempts_is_kept(store, lookup, broadcaster):
    service = VerificationService(store, lookup, broadcaster, max_attempts=0, backoff_base=0.0)

    assert service.max_attempts == 0
    assert service.backoff_base == 0.0
