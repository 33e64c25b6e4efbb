"""Translate infrastructure failures into DependencyUnavailableError.

Each external call is single-shot and bounded by the client's own timeout
(redis socket timeouts, Postgres connect/statement timeouts, requests
timeout). This guard turns the resulting low-level exceptions into one typed
auth error. No retries happen here.
"""

import logging
from contextlib import contextmanager

import psycopg2
import psycopg2.pool
import redis

from auth.exceptions import DependencyUnavailableError
from clients.email_client import EmailGatewayError

logger = logging.getLogger(__name__)

_UNAVAILABLE = (
    redis.exceptions.ConnectionError,
    redis.exceptions.TimeoutError,
    psycopg2.OperationalError,
    psycopg2.pool.PoolError,
    EmailGatewayError,
    TimeoutError,
    ConnectionError,
)


@contextmanager
def external_dependency(name: str):
    """
    Guard a call to an external collaborator.

    Usable as a context manager or as a method decorator:

        @external_dependency("credential_store")
        def find_by_identifier(self, identifier): ...
    """
    try:
        yield
    except _UNAVAILABLE as e:
        logger.warning(f"Dependency '{name}' unavailable: {type(e).__name__}: {e}")
        raise DependencyUnavailableError(name) from e
