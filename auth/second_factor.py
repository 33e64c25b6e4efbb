"""Second-factor engine: issue and verify one-time code challenges.

Backs both the login second factor and the recovery OTP step. Raw codes are
only ever handed to the notifier; the store keeps an HMAC of the code bound
to the challenge id.
"""

import hashlib
import hmac
import logging
import secrets
from datetime import timedelta
from time import monotonic, sleep
from uuid import UUID

from auth.challenge_store import AttemptOutcome, ChallengeStore
from auth.config import AuthConfig
from auth.exceptions import (
    AttemptsExceededError,
    ExpiredError,
    InvalidCodeError,
    NotFoundError,
)
from auth.notifier import CodeNotifier
from auth.types import Challenge, ChallengeIssued, ChallengeKind, VerifyResult
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class SecondFactorEngine:
    """Issues, delivers and verifies one-time code challenges.

    Lifetime and attempt budget come from AuthConfig and are fixed per
    challenge at issue time.
    """

    def __init__(
        self,
        config: AuthConfig,
        challenge_store: ChallengeStore,
        notifier: CodeNotifier,
        code_hash_key: str,
    ):
        if not code_hash_key:
            raise ValueError("code_hash_key is required")
        self._config = config
        self._store = challenge_store
        self._notifier = notifier
        self._code_hash_key = code_hash_key.encode("utf-8")
        # Moving average of successful delivery time, in seconds
        self._delivery_estimate = 0.0

    def hash_code(self, challenge_id: str, code: str) -> str:
        """HMAC-SHA256 of the code, bound to its challenge id."""
        message = f"{challenge_id}:{code.strip()}".encode("utf-8")
        return hmac.new(self._code_hash_key, message, hashlib.sha256).hexdigest()

    def _generate_code(self) -> str:
        return f"{secrets.randbelow(10 ** self._config.otp_length):0{self._config.otp_length}d}"

    def _new_challenge(
        self, kind: ChallengeKind, owner_user_id: UUID | None, code: str
    ) -> Challenge:
        now = now_utc()
        challenge_id = secrets.token_urlsafe(24)
        return Challenge(
            id=challenge_id,
            kind=kind,
            owner_user_id=owner_user_id,
            code_hash=self.hash_code(challenge_id, code),
            created_at=now,
            expires_at=now + timedelta(minutes=self._config.challenge_expiry_minutes),
            attempts_used=0,
            max_attempts=self._config.challenge_max_attempts,
            consumed=False,
        )

    def issue_challenge(
        self, user_id: UUID, kind: ChallengeKind, destination: str
    ) -> ChallengeIssued:
        """Create a challenge and deliver its code.

        Flow:
        1. Generate code, store hash + metadata
        2. Deliver raw code to destination
        3. If delivery fails, invalidate the stored challenge and re-raise

        Raises:
            DependencyUnavailableError: If the store or notifier is unreachable.
        """
        code = self._generate_code()
        challenge = self._new_challenge(kind, user_id, code)
        self._store.create(challenge)

        started = monotonic()
        try:
            self._notifier.send_code(destination, code, kind, challenge.expires_at)
        except Exception:
            self._store.invalidate(challenge.id)
            raise
        self._record_delivery(monotonic() - started)

        logger.info(f"Issued {kind.value} challenge for user {user_id}")
        return ChallengeIssued(challenge_id=challenge.id, expires_at=challenge.expires_at)

    def _record_delivery(self, elapsed: float) -> None:
        if self._delivery_estimate == 0.0:
            self._delivery_estimate = elapsed
        else:
            self._delivery_estimate = 0.8 * self._delivery_estimate + 0.2 * elapsed

    def issue_decoy_challenge(self, kind: ChallengeKind) -> ChallengeIssued:
        """Store an ownerless challenge no submitted code can match. Nothing is sent.

        Verification attempts against it behave exactly like attempts against
        a real challenge (invalid code, then exhaustion). The call takes about
        as long as a recent real delivery, capped at the dependency timeout.
        """
        unguessable = secrets.token_urlsafe(32)
        challenge = self._new_challenge(kind, None, unguessable)
        self._store.create(challenge)
        sleep(min(self._delivery_estimate, self._config.dependency_timeout_seconds))
        return ChallengeIssued(challenge_id=challenge.id, expires_at=challenge.expires_at)

    def verify_challenge(
        self,
        challenge_id: str,
        code: str,
        kind: ChallengeKind,
        channel: str = "",
    ) -> VerifyResult:
        """Verify a code, consuming the challenge on success.

        `channel` is reserved for future delivery-channel selection and is
        ignored.

        Raises:
            NotFoundError: Unknown id, or a challenge issued for another purpose.
            AttemptsExceededError: Attempt budget used up (challenge stays dead).
            ExpiredError: Past expiry or already consumed.
            InvalidCodeError: Wrong code; the attempt was counted.
        """
        challenge = self._store.get(challenge_id)
        if challenge is None or challenge.kind != kind:
            raise NotFoundError()

        result = self._store.attempt(challenge_id, self.hash_code(challenge_id, code), now_utc())

        if result.outcome == AttemptOutcome.VERIFIED:
            return VerifyResult(
                challenge_id=challenge_id,
                kind=challenge.kind,
                user_id=challenge.owner_user_id,
            )
        if result.outcome == AttemptOutcome.NOT_FOUND:
            raise NotFoundError()
        if result.outcome == AttemptOutcome.ATTEMPTS_EXCEEDED:
            raise AttemptsExceededError()
        if result.outcome in (AttemptOutcome.EXPIRED, AttemptOutcome.CONSUMED):
            raise ExpiredError()
        raise InvalidCodeError(remaining_attempts=result.remaining_attempts)
