"""Per-identifier login failure lockout and one-time code issue limits.

Uses Valkey with sliding window TTL - each counted event resets the expiry.
Attackers hammering one identifier hit an ever-extending lockout. Unknown
identifiers are counted exactly like known ones, so lockout reveals nothing
about which accounts exist.
"""

from auth.config import AuthConfig
from auth.dependencies import external_dependency
from auth.exceptions import RateLimitedError
from auth.types import ChallengeKind
from clients.valkey_client import ValkeyClient


class LoginRateLimiter:
    """Failed-login counter per identifier using Valkey."""

    KEY_PREFIX = "ratelimit:login_failures:"

    def __init__(self, valkey: ValkeyClient, config: AuthConfig):
        self._valkey = valkey
        self._config = config
        self._window_seconds = config.login_failure_window_minutes * 60

    def _key(self, identifier: str) -> str:
        """Generate counter key for identifier (normalized to lowercase)."""
        return f"{self.KEY_PREFIX}{identifier.strip().lower()}"

    @external_dependency("rate_limiter")
    def check_not_locked(self, identifier: str) -> None:
        """Refuse further attempts once the failure limit is reached.

        Raises:
            RateLimitedError: If the identifier is locked out.
        """
        key = self._key(identifier)
        current = self._valkey.get(key)

        if current is not None and int(current) >= self._config.login_failure_limit:
            ttl = self._valkey.ttl(key)
            raise RateLimitedError(retry_after_seconds=max(ttl, 1))  # At least 1 second

    @external_dependency("rate_limiter")
    def record_failure(self, identifier: str) -> int:
        """Increment the failure counter. Returns the new count.

        Sliding window: TTL resets on every failure.
        """
        key = self._key(identifier)
        count = self._valkey.incr(key)
        self._valkey.expire(key, self._window_seconds)
        return count

    @external_dependency("rate_limiter")
    def reset(self, identifier: str) -> None:
        """Clear the counter after a successful login."""
        self._valkey.delete(self._key(identifier))

    @external_dependency("rate_limiter")
    def get_remaining_attempts(self, identifier: str) -> int:
        """Get remaining failures allowed before lockout."""
        current = self._valkey.get(self._key(identifier))

        if current is None:
            return self._config.login_failure_limit

        remaining = self._config.login_failure_limit - int(current)
        return max(remaining, 0)


class ChallengeIssueLimiter:
    """Caps how many one-time codes one identifier can request per window.

    Every request counts, whether or not the identifier exists, so the limit
    behaves identically for real and unknown accounts.
    """

    KEY_PREFIX = "ratelimit:challenge_issue:"

    def __init__(self, valkey: ValkeyClient, config: AuthConfig):
        self._valkey = valkey
        self._config = config
        self._window_seconds = config.challenge_issue_window_minutes * 60

    def _key(self, identifier: str, kind: ChallengeKind) -> str:
        return f"{self.KEY_PREFIX}{kind.value}:{identifier.strip().lower()}"

    @external_dependency("rate_limiter")
    def check_rate_limit(self, identifier: str, kind: ChallengeKind) -> None:
        """Count a code request and refuse it once over the limit.

        Sliding window: TTL resets on every request. Hammering extends lockout.

        Raises:
            RateLimitedError: If the limit is exceeded.
        """
        key = self._key(identifier, kind)
        count = self._valkey.incr(key)
        self._valkey.expire(key, self._window_seconds)

        if count > self._config.challenge_issue_limit:
            ttl = self._valkey.ttl(key)
            raise RateLimitedError(retry_after_seconds=max(ttl, 1))
