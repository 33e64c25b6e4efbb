"""
Valkey (Redis-compatible) client for challenges, consumed tokens and login counters.

Simple wrapper around redis-py. Connection URL from Vault.
Fail-fast: raises on connection failure, never returns fallback values.
Every socket operation is bounded by a timeout so a stalled server surfaces
as redis.TimeoutError instead of a hung request.
"""

import logging
from typing import Any, Callable

import redis

logger = logging.getLogger(__name__)


class ValkeyClient:
    """
    Redis-compatible client for Valkey.

    Usage:
        client = ValkeyClient("redis://localhost:6379/0", timeout_seconds=2.0)
        client.set("key", "value", expire_seconds=300)
        value = client.get("key")  # Returns None if missing
    """

    def __init__(self, url: str, timeout_seconds: float = 5.0):
        """
        Initialize Valkey connection.

        Args:
            url: Redis-compatible connection URL (e.g., redis://localhost:6379/0)
            timeout_seconds: Socket connect/read timeout for every command

        Raises:
            redis.ConnectionError: If connection fails
        """
        self._client = redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=timeout_seconds,
            socket_connect_timeout=timeout_seconds,
        )
        # Verify connectivity immediately (fail-fast)
        self._client.ping()
        logger.info("ValkeyClient connected")

    def ping(self) -> bool:
        """
        Health check.

        Returns True if Valkey responds.
        Raises redis.ConnectionError if unreachable.
        """
        self._client.ping()
        return True

    def get(self, key: str) -> str | None:
        """
        Get value by key.

        Returns None if key doesn't exist (not an error).
        Raises on connection failure.
        """
        return self._client.get(key)

    def set(self, key: str, value: str, expire_seconds: int | None = None) -> None:
        """
        Set key to value, optionally with expiration.

        Args:
            key: Key to set
            value: Value to store
            expire_seconds: TTL in seconds (None for no expiration)
        """
        if expire_seconds is not None:
            self._client.setex(key, expire_seconds, value)
        else:
            self._client.set(key, value)

    def set_if_absent(self, key: str, value: str, expire_seconds: int) -> bool:
        """
        Atomically set key only if it does not exist (SET NX EX).

        Returns True if this call created the key, False if it already existed.
        """
        return bool(self._client.set(key, value, ex=expire_seconds, nx=True))

    def delete(self, key: str) -> bool:
        """
        Delete key.

        Returns True if key existed and was deleted, False if key didn't exist.
        """
        return self._client.delete(key) > 0

    def exists(self, key: str) -> bool:
        """Check if key exists."""
        return self._client.exists(key) > 0

    def ttl(self, key: str) -> int:
        """
        Get remaining TTL in seconds.

        Returns:
            -2 if key doesn't exist
            -1 if key has no expiration
            Positive int: remaining seconds
        """
        return self._client.ttl(key)

    def incr(self, key: str) -> int:
        """
        Increment key by 1.

        Creates key with value 1 if it doesn't exist.
        Returns the new value.
        """
        return self._client.incr(key)

    def expire(self, key: str, seconds: int) -> bool:
        """Set key TTL. Returns False if the key doesn't exist."""
        return bool(self._client.expire(key, seconds))

    def set_hash(self, key: str, mapping: dict[str, str], expire_seconds: int) -> None:
        """
        Write all fields of a hash and its TTL in one round trip.

        Args:
            key: Hash key
            mapping: Field -> string value
            expire_seconds: TTL applied to the whole hash
        """
        pipe = self._client.pipeline(transaction=True)
        pipe.hset(key, mapping=mapping)
        pipe.expire(key, expire_seconds)
        pipe.execute()

    def get_hash(self, key: str) -> dict[str, str] | None:
        """Read all fields of a hash. Returns None if the key doesn't exist."""
        data = self._client.hgetall(key)
        return data or None

    def register_script(self, script: str) -> Callable[..., Any]:
        """
        Register a Lua script and return a callable that runs it atomically.

        The callable takes keys=[...] and args=[...] like redis-py's Script.
        """
        return self._client.register_script(script)

    def close(self) -> None:
        """Close the connection."""
        self._client.close()
        logger.info("ValkeyClient closed")
