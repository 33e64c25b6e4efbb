"""Tests for SecondFactorEngine - one-time code issue and verification."""

from datetime import timedelta
from unittest.mock import Mock, patch
from uuid import uuid4

import pytest

from auth.config import AuthConfig
from auth.exceptions import (
    AttemptsExceededError,
    DependencyUnavailableError,
    ExpiredError,
    InvalidCodeError,
    NotFoundError,
)
from auth.second_factor import SecondFactorEngine
from auth.types import ChallengeKind
from utils.timezone import now_utc

CODE_HASH_KEY = "test-code-hash-key-0123456789abcdef"


@pytest.fixture
def fixed_code():
    """Every issued challenge uses code 482913."""
    with patch.object(SecondFactorEngine, "_generate_code", return_value="482913"):
        yield "482913"


class TestIssueChallenge:
    def test_code_is_delivered_not_stored(self, engine, challenge_store, notifier):
        issued = engine.issue_challenge(uuid4(), ChallengeKind.SECOND_FACTOR, "a@example.com")

        code = notifier.last_code
        stored = challenge_store.get(issued.challenge_id)
        assert notifier.sent[-1]["destination"] == "a@example.com"
        assert stored.code_hash == engine.hash_code(issued.challenge_id, code)

    def test_code_has_configured_length(self, challenge_store, notifier):
        engine = SecondFactorEngine(
            AuthConfig(otp_length=8), challenge_store, notifier, CODE_HASH_KEY
        )
        engine.issue_challenge(uuid4(), ChallengeKind.SECOND_FACTOR, "a@example.com")
        assert len(notifier.last_code) == 8
        assert notifier.last_code.isdigit()

    def test_expiry_and_budget_from_config(self, engine, challenge_store, config):
        issued = engine.issue_challenge(uuid4(), ChallengeKind.RECOVERY, "a@example.com")
        stored = challenge_store.get(issued.challenge_id)

        assert stored.max_attempts == config.challenge_max_attempts
        lifetime = stored.expires_at - stored.created_at
        assert lifetime == timedelta(minutes=config.challenge_expiry_minutes)
        assert issued.expires_at == stored.expires_at

    def test_challenge_ids_are_unique(self, engine):
        a = engine.issue_challenge(uuid4(), ChallengeKind.SECOND_FACTOR, "a@example.com")
        b = engine.issue_challenge(uuid4(), ChallengeKind.SECOND_FACTOR, "a@example.com")
        assert a.challenge_id != b.challenge_id

    def test_delivery_failure_invalidates_challenge(self, config, challenge_store):
        notifier = Mock()
        notifier.send_code.side_effect = DependencyUnavailableError("notifier")
        engine = SecondFactorEngine(config, challenge_store, notifier, CODE_HASH_KEY)

        with pytest.raises(DependencyUnavailableError):
            engine.issue_challenge(uuid4(), ChallengeKind.SECOND_FACTOR, "a@example.com")

        stored = list(challenge_store._challenges.values())
        assert len(stored) == 1
        assert stored[0].consumed is True

    def test_requires_code_hash_key(self, config, challenge_store, notifier):
        with pytest.raises(ValueError):
            SecondFactorEngine(config, challenge_store, notifier, "")


class TestDecoyChallenge:
    def test_nothing_is_sent(self, engine, notifier):
        engine.issue_decoy_challenge(ChallengeKind.RECOVERY)
        assert notifier.sent == []

    def test_no_code_verifies(self, engine, fixed_code):
        issued = engine.issue_decoy_challenge(ChallengeKind.RECOVERY)
        with pytest.raises(InvalidCodeError):
            engine.verify_challenge(issued.challenge_id, fixed_code, ChallengeKind.RECOVERY)

    def test_decoy_exhausts_like_a_real_challenge(self, engine, config):
        issued = engine.issue_decoy_challenge(ChallengeKind.RECOVERY)
        for _ in range(config.challenge_max_attempts):
            with pytest.raises(InvalidCodeError):
                engine.verify_challenge(issued.challenge_id, "000000", ChallengeKind.RECOVERY)

        with pytest.raises(AttemptsExceededError):
            engine.verify_challenge(issued.challenge_id, "000000", ChallengeKind.RECOVERY)

    def test_takes_as_long_as_a_real_delivery(self, engine, active_user):
        with patch("auth.second_factor.monotonic", side_effect=[10.0, 10.3]):
            engine.issue_challenge(active_user.user_id, ChallengeKind.RECOVERY, active_user.email)

        with patch("auth.second_factor.sleep") as sleep:
            engine.issue_decoy_challenge(ChallengeKind.RECOVERY)

        sleep.assert_called_once_with(pytest.approx(0.3))

    def test_delivery_time_is_averaged(self, engine, active_user):
        with patch("auth.second_factor.monotonic", side_effect=[0.0, 1.0, 5.0, 5.5]):
            engine.issue_challenge(active_user.user_id, ChallengeKind.RECOVERY, active_user.email)
            engine.issue_challenge(active_user.user_id, ChallengeKind.RECOVERY, active_user.email)

        with patch("auth.second_factor.sleep") as sleep:
            engine.issue_decoy_challenge(ChallengeKind.RECOVERY)

        sleep.assert_called_once_with(pytest.approx(0.9))

    def test_wait_capped_at_dependency_timeout(self, engine, active_user, config):
        with patch("auth.second_factor.monotonic", side_effect=[0.0, 120.0]):
            engine.issue_challenge(active_user.user_id, ChallengeKind.RECOVERY, active_user.email)

        with patch("auth.second_factor.sleep") as sleep:
            engine.issue_decoy_challenge(ChallengeKind.RECOVERY)

        sleep.assert_called_once_with(config.dependency_timeout_seconds)

    def test_failed_delivery_not_averaged(self, config, challenge_store, active_user):
        failing = Mock()
        failing.send_code.side_effect = DependencyUnavailableError("notifier")
        engine = SecondFactorEngine(config, challenge_store, failing, CODE_HASH_KEY)

        with pytest.raises(DependencyUnavailableError):
            engine.issue_challenge(active_user.user_id, ChallengeKind.RECOVERY, active_user.email)

        with patch("auth.second_factor.sleep") as sleep:
            engine.issue_decoy_challenge(ChallengeKind.RECOVERY)

        sleep.assert_called_once_with(0.0)


class TestVerifyChallenge:
    def test_correct_code_succeeds(self, engine, fixed_code):
        user_id = uuid4()
        issued = engine.issue_challenge(user_id, ChallengeKind.SECOND_FACTOR, "a@example.com")

        result = engine.verify_challenge(issued.challenge_id, fixed_code, ChallengeKind.SECOND_FACTOR)

        assert result.user_id == user_id
        assert result.kind == ChallengeKind.SECOND_FACTOR

    def test_surrounding_whitespace_ignored(self, engine, fixed_code):
        issued = engine.issue_challenge(uuid4(), ChallengeKind.SECOND_FACTOR, "a@example.com")
        engine.verify_challenge(issued.challenge_id, f" {fixed_code} ", ChallengeKind.SECOND_FACTOR)

    def test_wrong_code_reports_remaining(self, engine, fixed_code, config):
        issued = engine.issue_challenge(uuid4(), ChallengeKind.SECOND_FACTOR, "a@example.com")

        with pytest.raises(InvalidCodeError) as exc_info:
            engine.verify_challenge(issued.challenge_id, "000000", ChallengeKind.SECOND_FACTOR)

        assert exc_info.value.remaining_attempts == config.challenge_max_attempts - 1

    def test_unknown_id_not_found(self, engine):
        with pytest.raises(NotFoundError):
            engine.verify_challenge("nope", "000000", ChallengeKind.SECOND_FACTOR)

    def test_wrong_kind_not_found(self, engine, fixed_code):
        """A recovery code cannot complete a login and vice versa."""
        issued = engine.issue_challenge(uuid4(), ChallengeKind.RECOVERY, "a@example.com")
        with pytest.raises(NotFoundError):
            engine.verify_challenge(issued.challenge_id, fixed_code, ChallengeKind.SECOND_FACTOR)

    def test_wrong_kind_does_not_spend_an_attempt(self, engine, fixed_code, challenge_store):
        issued = engine.issue_challenge(uuid4(), ChallengeKind.RECOVERY, "a@example.com")
        with pytest.raises(NotFoundError):
            engine.verify_challenge(issued.challenge_id, "000000", ChallengeKind.SECOND_FACTOR)
        assert challenge_store.get(issued.challenge_id).attempts_used == 0

    def test_expired_challenge(self, engine, fixed_code, config):
        issued = engine.issue_challenge(uuid4(), ChallengeKind.SECOND_FACTOR, "a@example.com")

        later = now_utc() + timedelta(minutes=config.challenge_expiry_minutes, seconds=1)
        with patch("auth.second_factor.now_utc", return_value=later):
            with pytest.raises(ExpiredError):
                engine.verify_challenge(issued.challenge_id, fixed_code, ChallengeKind.SECOND_FACTOR)

    def test_channel_is_ignored(self, engine, fixed_code):
        issued = engine.issue_challenge(uuid4(), ChallengeKind.SECOND_FACTOR, "a@example.com")
        engine.verify_challenge(
            issued.challenge_id, fixed_code, ChallengeKind.SECOND_FACTOR, channel="sms"
        )


class TestAttemptBound:
    def test_correct_code_after_exhaustion_fails(self, challenge_store, notifier, fixed_code):
        """Four wrong codes exhaust a four-attempt challenge; the right code is then refused."""
        engine = SecondFactorEngine(
            AuthConfig(challenge_max_attempts=4), challenge_store, notifier, CODE_HASH_KEY
        )
        issued = engine.issue_challenge(uuid4(), ChallengeKind.SECOND_FACTOR, "a@example.com")

        for _ in range(4):
            with pytest.raises(InvalidCodeError):
                engine.verify_challenge(issued.challenge_id, "000000", ChallengeKind.SECOND_FACTOR)

        assert challenge_store.get(issued.challenge_id).attempts_used == 4

        with pytest.raises(AttemptsExceededError):
            engine.verify_challenge(issued.challenge_id, fixed_code, ChallengeKind.SECOND_FACTOR)

    def test_never_more_than_max_failures(self, engine, config):
        issued = engine.issue_challenge(uuid4(), ChallengeKind.SECOND_FACTOR, "a@example.com")
        failures = 0
        for _ in range(config.challenge_max_attempts + 3):
            try:
                engine.verify_challenge(issued.challenge_id, "000000", ChallengeKind.SECOND_FACTOR)
            except InvalidCodeError:
                failures += 1
            except AttemptsExceededError:
                pass
        assert failures == config.challenge_max_attempts


class TestSingleUse:
    def test_reuse_after_success_is_expired(self, engine, fixed_code):
        issued = engine.issue_challenge(uuid4(), ChallengeKind.SECOND_FACTOR, "a@example.com")
        engine.verify_challenge(issued.challenge_id, fixed_code, ChallengeKind.SECOND_FACTOR)

        with pytest.raises(ExpiredError):
            engine.verify_challenge(issued.challenge_id, fixed_code, ChallengeKind.SECOND_FACTOR)

    def test_codes_bound_to_their_challenge(self, engine, notifier):
        a = engine.issue_challenge(uuid4(), ChallengeKind.SECOND_FACTOR, "a@example.com")
        code_a = notifier.last_code
        b = engine.issue_challenge(uuid4(), ChallengeKind.SECOND_FACTOR, "b@example.com")

        assert engine.hash_code(a.challenge_id, code_a) != engine.hash_code(b.challenge_id, code_a)

