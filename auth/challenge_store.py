"""Challenge storage with atomic consume-once verification.

A verification attempt is one indivisible step per challenge id: check
exhaustion/consumption/expiry, compare the code hash, then either consume
the challenge or count the failed attempt. Concurrent attempts on the same
id serialize, so two correct codes cannot both succeed and two wrong codes
cannot under-count.
"""

import hmac
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Protocol
from uuid import UUID

from auth.dependencies import external_dependency
from auth.types import Challenge, ChallengeKind
from clients.valkey_client import ValkeyClient
from utils.timezone import now_utc, parse_iso, seconds_until, to_epoch

logger = logging.getLogger(__name__)


class AttemptOutcome(str, Enum):
    VERIFIED = "verified"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    CONSUMED = "consumed"
    ATTEMPTS_EXCEEDED = "attempts_exceeded"
    INVALID_CODE = "invalid_code"


@dataclass(frozen=True)
class AttemptResult:
    """Outcome of one verification attempt and the attempt count after it."""

    outcome: AttemptOutcome
    attempts_used: int
    max_attempts: int

    @property
    def remaining_attempts(self) -> int:
        return max(self.max_attempts - self.attempts_used, 0)


class ChallengeStore(Protocol):
    def create(self, challenge: Challenge) -> None: ...

    def get(self, challenge_id: str) -> Challenge | None: ...

    def attempt(self, challenge_id: str, code_hash: str, now: datetime) -> AttemptResult: ...

    def invalidate(self, challenge_id: str) -> None: ...


class InMemoryChallengeStore:
    """Process-local challenge store guarded by striped locks.

    A challenge id always maps to the same stripe, so attempts on one id
    serialize. The stripe count is fixed: unknown ids submitted to verify
    allocate nothing. Suitable for a single worker process and for tests.
    Expired challenges are dropped lazily by purge_expired().
    """

    LOCK_STRIPES = 64

    def __init__(self):
        self._challenges: dict[str, Challenge] = {}
        self._locks = [threading.Lock() for _ in range(self.LOCK_STRIPES)]

    def _lock_for(self, challenge_id: str) -> threading.Lock:
        return self._locks[hash(challenge_id) % self.LOCK_STRIPES]

    def create(self, challenge: Challenge) -> None:
        with self._lock_for(challenge.id):
            if challenge.id in self._challenges:
                raise ValueError(f"Challenge {challenge.id} already exists")
            self._challenges[challenge.id] = challenge.model_copy()

    def get(self, challenge_id: str) -> Challenge | None:
        with self._lock_for(challenge_id):
            challenge = self._challenges.get(challenge_id)
            return challenge.model_copy() if challenge else None

    def attempt(self, challenge_id: str, code_hash: str, now: datetime) -> AttemptResult:
        with self._lock_for(challenge_id):
            challenge = self._challenges.get(challenge_id)
            if challenge is None:
                return AttemptResult(AttemptOutcome.NOT_FOUND, 0, 0)

            def result(outcome: AttemptOutcome) -> AttemptResult:
                return AttemptResult(outcome, challenge.attempts_used, challenge.max_attempts)

            if challenge.attempts_used >= challenge.max_attempts:
                challenge.consumed = True
                return result(AttemptOutcome.ATTEMPTS_EXCEEDED)
            if challenge.consumed:
                return result(AttemptOutcome.CONSUMED)
            if now > challenge.expires_at:
                return result(AttemptOutcome.EXPIRED)

            if hmac.compare_digest(challenge.code_hash, code_hash):
                challenge.consumed = True
                return result(AttemptOutcome.VERIFIED)

            challenge.attempts_used += 1
            return result(AttemptOutcome.INVALID_CODE)

    def invalidate(self, challenge_id: str) -> None:
        with self._lock_for(challenge_id):
            challenge = self._challenges.get(challenge_id)
            if challenge is not None:
                challenge.consumed = True

    def purge_expired(self, now: datetime | None = None) -> int:
        """Drop challenges past expiry. Returns count removed."""
        now = now or now_utc()
        expired = [cid for cid, c in list(self._challenges.items()) if now > c.expires_at]
        for cid in expired:
            with self._lock_for(cid):
                self._challenges.pop(cid, None)
        if expired:
            logger.info(f"Purged {len(expired)} expired challenges")
        return len(expired)


# KEYS[1] = challenge hash key
# ARGV[1] = submitted code hash, ARGV[2] = now (epoch seconds)
# Returns {outcome, attempts_used, max_attempts}
_ATTEMPT_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 0 then
    return {'not_found', 0, 0}
end

local attempts = tonumber(redis.call('HGET', KEYS[1], 'attempts_used'))
local max_attempts = tonumber(redis.call('HGET', KEYS[1], 'max_attempts'))

if attempts >= max_attempts then
    redis.call('HSET', KEYS[1], 'consumed', '1')
    return {'attempts_exceeded', attempts, max_attempts}
end
if redis.call('HGET', KEYS[1], 'consumed') == '1' then
    return {'consumed', attempts, max_attempts}
end
if tonumber(ARGV[2]) > tonumber(redis.call('HGET', KEYS[1], 'expires_at_epoch')) then
    return {'expired', attempts, max_attempts}
end

if redis.call('HGET', KEYS[1], 'code_hash') == ARGV[1] then
    redis.call('HSET', KEYS[1], 'consumed', '1')
    return {'verified', attempts, max_attempts}
end

attempts = redis.call('HINCRBY', KEYS[1], 'attempts_used', 1)
return {'invalid_code', attempts, max_attempts}
"""

# Marks an existing challenge consumed without recreating an expired key.
_INVALIDATE_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 1 then
    redis.call('HSET', KEYS[1], 'consumed', '1')
    return 1
end
return 0
"""


class ValkeyChallengeStore:
    """Challenges as Valkey hashes; attempts run as one Lua script per call.

    Keys outlive the challenge by a grace period so a consumed or expired
    challenge still answers "expired" instead of "not found" for a while.
    """

    KEY_PREFIX = "challenge:"
    GRACE_SECONDS = 900

    def __init__(self, valkey: ValkeyClient):
        self._valkey = valkey
        self._attempt_script = valkey.register_script(_ATTEMPT_SCRIPT)
        self._invalidate_script = valkey.register_script(_INVALIDATE_SCRIPT)

    def _key(self, challenge_id: str) -> str:
        return f"{self.KEY_PREFIX}{challenge_id}"

    @external_dependency("challenge_store")
    def create(self, challenge: Challenge) -> None:
        self._valkey.set_hash(
            self._key(challenge.id),
            {
                "kind": challenge.kind.value,
                "owner_user_id": str(challenge.owner_user_id) if challenge.owner_user_id else "",
                "code_hash": challenge.code_hash,
                "created_at": challenge.created_at.isoformat(),
                "expires_at": challenge.expires_at.isoformat(),
                "expires_at_epoch": repr(to_epoch(challenge.expires_at)),
                "attempts_used": str(challenge.attempts_used),
                "max_attempts": str(challenge.max_attempts),
                "consumed": "1" if challenge.consumed else "0",
            },
            expire_seconds=seconds_until(challenge.expires_at) + self.GRACE_SECONDS,
        )

    @external_dependency("challenge_store")
    def get(self, challenge_id: str) -> Challenge | None:
        data = self._valkey.get_hash(self._key(challenge_id))
        if data is None:
            return None
        return Challenge(
            id=challenge_id,
            kind=ChallengeKind(data["kind"]),
            owner_user_id=UUID(data["owner_user_id"]) if data["owner_user_id"] else None,
            code_hash=data["code_hash"],
            created_at=parse_iso(data["created_at"]),
            expires_at=parse_iso(data["expires_at"]),
            attempts_used=int(data["attempts_used"]),
            max_attempts=int(data["max_attempts"]),
            consumed=data["consumed"] == "1",
        )

    @external_dependency("challenge_store")
    def attempt(self, challenge_id: str, code_hash: str, now: datetime) -> AttemptResult:
        outcome, attempts_used, max_attempts = self._attempt_script(
            keys=[self._key(challenge_id)],
            args=[code_hash, repr(to_epoch(now))],
        )
        return AttemptResult(AttemptOutcome(outcome), int(attempts_used), int(max_attempts))

    @external_dependency("challenge_store")
    def invalidate(self, challenge_id: str) -> None:
        self._invalidate_script(keys=[self._key(challenge_id)])
