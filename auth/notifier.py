"""Out-of-band delivery of one-time codes."""

from datetime import datetime
from typing import Protocol

from auth.config import AuthConfig
from auth.dependencies import external_dependency
from auth.types import ChallengeKind
from clients.email_client import EmailGatewayClient
from utils.timezone import now_utc


class CodeNotifier(Protocol):
    def send_code(
        self, destination: str, code: str, kind: ChallengeKind, expires_at: datetime
    ) -> None: ...


class EmailCodeNotifier:
    """Delivers codes through the signed email gateway."""

    def __init__(self, email_client: EmailGatewayClient, config: AuthConfig):
        self._email_client = email_client
        self._config = config

    @external_dependency("notifier")
    def send_code(
        self, destination: str, code: str, kind: ChallengeKind, expires_at: datetime
    ) -> None:
        minutes_left = max(round((expires_at - now_utc()).total_seconds() / 60), 1)
        self._email_client.send_verification_code(
            email=destination,
            code=code,
            purpose=kind.value,
            expires_minutes=minutes_left,
            app_name=self._config.app_name,
        )
