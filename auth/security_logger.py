"""Security event logging for auth audit trail.

Append-only log to security_events table (no RLS).
Includes log rotation to archive old events to file.
Codes, secrets and tokens are never written here.
"""

import json
import logging
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Any
from uuid import UUID

from psycopg2.extras import Json

from auth.dependencies import external_dependency
from auth.exceptions import DependencyUnavailableError
from clients.postgres_client import PostgresClient
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class SecurityEvent(Enum):
    """Auth security event types."""

    LOGIN_SUCCEEDED = "login_succeeded"
    LOGIN_FAILED = "login_failed"
    LOGIN_RATE_LIMITED = "login_rate_limited"
    SECOND_FACTOR_ISSUED = "second_factor_issued"
    SECOND_FACTOR_VERIFIED = "second_factor_verified"
    SECOND_FACTOR_FAILED = "second_factor_failed"
    CHALLENGE_EXHAUSTED = "challenge_exhausted"
    CHALLENGE_ISSUE_RATE_LIMITED = "challenge_issue_rate_limited"
    RECOVERY_REQUESTED = "recovery_requested"
    RECOVERY_UNKNOWN_IDENTIFIER = "recovery_unknown_identifier"
    RECOVERY_VERIFIED = "recovery_verified"
    RECOVERY_FAILED = "recovery_failed"
    PASSWORD_RESET = "password_reset"
    PASSWORD_RESET_REJECTED = "password_reset_rejected"
    RESET_TOKEN_REUSED = "reset_token_reused"


class SecurityLogger:
    """Append-only security event logger with rotation."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    @external_dependency("security_log")
    def log(
        self,
        event: SecurityEvent,
        identifier: str | None = None,
        user_id: UUID | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Log security event to database."""
        self._db.execute_returning(
            """INSERT INTO security_events
               (event_type, identifier, user_id, ip_address, user_agent, details, created_at)
               VALUES (%s, %s, %s, %s, %s, %s, %s)
               RETURNING id""",
            (
                event.value,
                identifier,
                str(user_id) if user_id else None,
                ip_address,
                user_agent,
                Json(details) if details else None,
                now_utc(),
            ),
        )

    def get_recent_events(
        self,
        identifier: str | None = None,
        user_id: UUID | None = None,
        event_type: SecurityEvent | None = None,
        limit: int = 100,
    ) -> list[dict]:
        """Query recent security events with optional filters."""
        conditions = []
        params = []

        if identifier:
            conditions.append("identifier = %s")
            params.append(identifier)

        if user_id:
            conditions.append("user_id = %s")
            params.append(str(user_id))

        if event_type:
            conditions.append("event_type = %s")
            params.append(event_type.value)

        where_clause = " AND ".join(conditions) if conditions else "1=1"
        params.append(limit)

        return self._db.execute(
            f"""SELECT id, event_type, identifier, user_id, ip_address, user_agent, details, created_at
                FROM security_events
                WHERE {where_clause}
                ORDER BY created_at DESC
                LIMIT %s""",
            tuple(params),
        )

    def rotate_logs(self, older_than_days: int, output_path: Path) -> int:
        """Archive old logs to file and delete from database.

        Args:
            older_than_days: Archive events older than this many days
            output_path: Path to write JSON lines file

        Returns:
            Number of events archived and deleted
        """
        cutoff = now_utc() - timedelta(days=older_than_days)

        events = self._db.execute(
            """SELECT id, event_type, identifier, user_id, ip_address, user_agent, details, created_at
               FROM security_events
               WHERE created_at < %s
               ORDER BY created_at ASC""",
            (cutoff,),
        )

        if not events:
            return 0

        # JSON lines, append mode
        with open(output_path, "a") as f:
            for event in events:
                record = {
                    "id": str(event["id"]),
                    "event_type": event["event_type"],
                    "identifier": event["identifier"],
                    "user_id": str(event["user_id"]) if event["user_id"] else None,
                    "ip_address": str(event["ip_address"]) if event["ip_address"] else None,
                    "user_agent": event["user_agent"],
                    "details": event["details"],
                    "created_at": event["created_at"].isoformat(),
                }
                f.write(json.dumps(record) + "\n")

        self._db.execute_returning(
            "DELETE FROM security_events WHERE created_at < %s RETURNING id",
            (cutoff,),
        )

        return len(events)


def log_committed(security_logger: SecurityLogger, event: SecurityEvent, **fields: Any) -> None:
    """Record an event for a change that has already been applied.

    The change stands even if the audit write fails, so the failure is
    logged here instead of being reported to the caller.
    """
    try:
        security_logger.log(event, **fields)
    except DependencyUnavailableError:
        logger.exception(f"Audit write for {event.value} failed after the change was applied")
