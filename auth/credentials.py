"""Credential store gateway.

Looks up credential records and verifies submitted secrets against argon2id
hashes. The Postgres tables are non-RLS: they are read before any user is
authenticated.
"""

import logging
import secrets
from typing import Protocol
from uuid import UUID

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from auth.dependencies import external_dependency
from auth.types import AccountStatus, Credential, CredentialCheck
from clients.postgres_client import PostgresClient
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class CredentialStore(Protocol):
    """Read access to credential records plus the password-hash write used by reset."""

    def find_by_identifier(self, identifier: str) -> Credential | None: ...

    def get_by_id(self, user_id: UUID) -> Credential | None: ...

    def update_password_hash(self, user_id: UUID, password_hash: str) -> bool: ...


class SecretHasher:
    """argon2id hashing for stored passwords."""

    def __init__(self, time_cost: int = 3, memory_cost: int = 65536, parallelism: int = 4):
        self._hasher = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            type=Type.ID,
        )

    def hash(self, secret: str) -> str:
        return self._hasher.hash(secret)

    def verify(self, password_hash: str, secret: str) -> bool:
        """Constant-time verify. Malformed stored hashes count as a mismatch."""
        try:
            return self._hasher.verify(password_hash, secret)
        except VerifyMismatchError:
            return False
        except (InvalidHashError, VerificationError):
            logger.warning("Stored password hash could not be verified")
            return False

    def needs_rehash(self, password_hash: str) -> bool:
        try:
            return self._hasher.check_needs_rehash(password_hash)
        except InvalidHashError:
            return True


class CredentialGateway:
    """Verifies identifier + secret pairs against the credential store.

    Unknown identifiers still pay for one hash verification against a dummy
    hash so response timing does not reveal whether an account exists.
    """

    def __init__(self, store: CredentialStore, hasher: SecretHasher):
        self._store = store
        self._hasher = hasher
        self._dummy_hash = hasher.hash(secrets.token_urlsafe(16))

    @staticmethod
    def normalize(identifier: str) -> str:
        return identifier.strip().lower()

    def find(self, identifier: str) -> Credential | None:
        return self._store.find_by_identifier(self.normalize(identifier))

    def get(self, user_id: UUID) -> Credential | None:
        return self._store.get_by_id(user_id)

    def verify_credentials(self, identifier: str, secret: str) -> CredentialCheck:
        """Check a secret. valid=True only for a matching password on an active account."""
        credential = self.find(identifier)

        if credential is None:
            self._hasher.verify(self._dummy_hash, secret)
            return CredentialCheck(valid=False)

        matches = self._hasher.verify(credential.password_hash, secret)
        if not matches:
            return CredentialCheck(
                valid=False, user_id=credential.user_id, status=credential.status
            )

        if credential.is_active and self._hasher.needs_rehash(credential.password_hash):
            self._store.update_password_hash(credential.user_id, self._hasher.hash(secret))
            logger.info(f"Rehashed password for user {credential.user_id}")

        return CredentialCheck(
            valid=credential.is_active,
            user_id=credential.user_id,
            status=credential.status,
            credential=credential,
        )

    def set_password(self, user_id: UUID, new_secret: str) -> None:
        """Hash and store a new password.

        Raises:
            LookupError: If the user no longer exists.
        """
        if not self._store.update_password_hash(user_id, self._hasher.hash(new_secret)):
            raise LookupError(f"No credential for user {user_id}")


class PostgresCredentialStore:
    """Credential records in the user_credentials table."""

    _COLUMNS = """user_id, identifier, email, password_hash, status,
                  tenant_alias, roles, second_factor_required"""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    def _to_credential(self, row: dict) -> Credential:
        return Credential(
            user_id=UUID(row["user_id"]) if isinstance(row["user_id"], str) else row["user_id"],
            identifier=row["identifier"],
            email=row["email"],
            password_hash=row["password_hash"],
            status=AccountStatus(row["status"]),
            alias=row["tenant_alias"],
            roles=list(row["roles"] or []),
            second_factor_required=row["second_factor_required"],
        )

    @external_dependency("credential_store")
    def find_by_identifier(self, identifier: str) -> Credential | None:
        """Find credential by identifier (case-insensitive)."""
        row = self._db.execute_single(
            f"SELECT {self._COLUMNS} FROM user_credentials WHERE identifier = lower(%s)",
            (identifier,),
        )
        return self._to_credential(row) if row else None

    @external_dependency("credential_store")
    def get_by_id(self, user_id: UUID) -> Credential | None:
        """Find credential by user ID."""
        row = self._db.execute_single(
            f"SELECT {self._COLUMNS} FROM user_credentials WHERE user_id = %s",
            (str(user_id),),
        )
        return self._to_credential(row) if row else None

    @external_dependency("credential_store")
    def update_password_hash(self, user_id: UUID, password_hash: str) -> bool:
        """Replace the password hash.

        Returns:
            True if the user was found and updated, False if not found.
        """
        rows = self._db.execute_returning(
            """UPDATE user_credentials
               SET password_hash = %s, password_changed_at = %s
               WHERE user_id = %s
               RETURNING user_id""",
            (password_hash, now_utc(), str(user_id)),
        )
        return len(rows) > 0
