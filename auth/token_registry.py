"""Consumed-token registry: at-most-once redemption of single-use tokens.

claim() is the gate. It atomically records a token id and reports whether
this caller was first. Entries only need to live as long as the token itself
could still verify.
"""

import threading
from datetime import datetime
from typing import Protocol

from auth.dependencies import external_dependency
from clients.valkey_client import ValkeyClient
from utils.timezone import now_utc, seconds_until


class ConsumedTokenRegistry(Protocol):
    def is_consumed(self, token_id: str) -> bool: ...

    def claim(self, token_id: str, expires_at: datetime) -> bool: ...

    def release(self, token_id: str) -> None: ...


class InMemoryTokenRegistry:
    """Lock-guarded set of redeemed token ids for a single process."""

    def __init__(self):
        self._consumed: dict[str, datetime] = {}
        self._lock = threading.Lock()

    def _purge(self, now: datetime) -> None:
        for token_id in [t for t, exp in self._consumed.items() if now > exp]:
            del self._consumed[token_id]

    def is_consumed(self, token_id: str) -> bool:
        with self._lock:
            return token_id in self._consumed

    def claim(self, token_id: str, expires_at: datetime) -> bool:
        """Record token_id. Returns False if it was already recorded."""
        with self._lock:
            self._purge(now_utc())
            if token_id in self._consumed:
                return False
            self._consumed[token_id] = expires_at
            return True

    def release(self, token_id: str) -> None:
        """Undo a claim whose follow-up write failed."""
        with self._lock:
            self._consumed.pop(token_id, None)


class ValkeyTokenRegistry:
    """Redeemed token ids as SET NX keys expiring with the token."""

    KEY_PREFIX = "consumed_token:"

    def __init__(self, valkey: ValkeyClient):
        self._valkey = valkey

    def _key(self, token_id: str) -> str:
        return f"{self.KEY_PREFIX}{token_id}"

    @external_dependency("token_registry")
    def is_consumed(self, token_id: str) -> bool:
        return self._valkey.exists(self._key(token_id))

    @external_dependency("token_registry")
    def claim(self, token_id: str, expires_at: datetime) -> bool:
        return self._valkey.set_if_absent(
            self._key(token_id),
            now_utc().isoformat(),
            expire_seconds=seconds_until(expires_at),
        )

    @external_dependency("token_registry")
    def release(self, token_id: str) -> None:
        self._valkey.delete(self._key(token_id))
