"""Shared test fixtures for the auth test suite."""

import os
import pytest
from uuid import UUID
from pathlib import Path
from unittest.mock import Mock

from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
# override=True ensures .env takes precedence over shell env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

from auth.challenge_store import InMemoryChallengeStore
from auth.config import AuthConfig
from auth.credentials import CredentialGateway, SecretHasher
from auth.login import LoginService
from auth.password_policy import PasswordPolicyValidator
from auth.rate_limiter import ChallengeIssueLimiter, LoginRateLimiter
from auth.recovery import RecoveryService
from auth.second_factor import SecondFactorEngine
from auth.security_logger import SecurityLogger
from auth.token_registry import InMemoryTokenRegistry
from auth.tokens import TokenIssuer
from auth.types import AccountStatus, Credential, RequestContext


# =============================================================================
# TEST USER CONSTANTS
# =============================================================================

TEST_USER_ID = UUID("00000000-0000-0000-0000-000000000001")
TEST_USER_IDENTIFIER = "testuser@example.com"
TEST_USER_SECRET = "Correct#Horse1"

# Account with a second factor required
TEST_MFA_USER_ID = UUID("00000000-0000-0000-0000-000000000002")
TEST_MFA_USER_IDENTIFIER = "mfa-user@example.com"

# Disabled account
TEST_DISABLED_USER_ID = UUID("00000000-0000-0000-0000-000000000003")
TEST_DISABLED_USER_IDENTIFIER = "disabled@example.com"

TEST_SIGNING_KEY = "test-signing-key-0123456789abcdef0123456789"
TEST_CODE_HASH_KEY = "test-code-hash-key-0123456789abcdef"


# =============================================================================
# IN-MEMORY COLLABORATORS
# =============================================================================


class FakeCredentialStore:
    """Dict-backed CredentialStore."""

    def __init__(self):
        self.credentials: dict[UUID, Credential] = {}

    def add(self, credential: Credential) -> None:
        self.credentials[credential.user_id] = credential

    def find_by_identifier(self, identifier: str) -> Credential | None:
        for credential in self.credentials.values():
            if credential.identifier == identifier:
                return credential
        return None

    def get_by_id(self, user_id: UUID) -> Credential | None:
        return self.credentials.get(user_id)

    def update_password_hash(self, user_id: UUID, password_hash: str) -> bool:
        credential = self.credentials.get(user_id)
        if credential is None:
            return False
        self.credentials[user_id] = credential.model_copy(update={"password_hash": password_hash})
        return True


class RecordingNotifier:
    """CodeNotifier that keeps every sent code instead of emailing it."""

    def __init__(self):
        self.sent: list[dict] = []

    def send_code(self, destination, code, kind, expires_at) -> None:
        self.sent.append(
            {"destination": destination, "code": code, "kind": kind, "expires_at": expires_at}
        )

    @property
    def last_code(self) -> str:
        return self.sent[-1]["code"]


# =============================================================================
# CORE FIXTURES
# =============================================================================


@pytest.fixture
def config() -> AuthConfig:
    return AuthConfig()


@pytest.fixture(scope="session")
def hasher() -> SecretHasher:
    """Cheap argon2 parameters so the suite stays fast."""
    return SecretHasher(time_cost=1, memory_cost=8192, parallelism=1)


@pytest.fixture
def credential_store(hasher) -> FakeCredentialStore:
    store = FakeCredentialStore()
    password_hash = hasher.hash(TEST_USER_SECRET)
    store.add(Credential(
        user_id=TEST_USER_ID,
        identifier=TEST_USER_IDENTIFIER,
        password_hash=password_hash,
        status=AccountStatus.ACTIVE,
        alias="acme",
        roles=["clerk"],
        email=TEST_USER_IDENTIFIER,
    ))
    store.add(Credential(
        user_id=TEST_MFA_USER_ID,
        identifier=TEST_MFA_USER_IDENTIFIER,
        password_hash=password_hash,
        status=AccountStatus.ACTIVE,
        alias="acme",
        roles=["admin"],
        email=TEST_MFA_USER_IDENTIFIER,
        second_factor_required=True,
    ))
    store.add(Credential(
        user_id=TEST_DISABLED_USER_ID,
        identifier=TEST_DISABLED_USER_IDENTIFIER,
        password_hash=password_hash,
        status=AccountStatus.DISABLED,
        alias="acme",
        roles=[],
        email=TEST_DISABLED_USER_IDENTIFIER,
    ))
    return store


@pytest.fixture
def user_secret() -> str:
    """Password shared by every seeded account."""
    return TEST_USER_SECRET


@pytest.fixture
def active_user(credential_store) -> Credential:
    return credential_store.get_by_id(TEST_USER_ID)


@pytest.fixture
def mfa_user(credential_store) -> Credential:
    return credential_store.get_by_id(TEST_MFA_USER_ID)


@pytest.fixture
def disabled_user(credential_store) -> Credential:
    return credential_store.get_by_id(TEST_DISABLED_USER_ID)


@pytest.fixture
def credential_gateway(credential_store, hasher) -> CredentialGateway:
    return CredentialGateway(credential_store, hasher)


@pytest.fixture
def challenge_store() -> InMemoryChallengeStore:
    return InMemoryChallengeStore()


@pytest.fixture
def token_registry() -> InMemoryTokenRegistry:
    return InMemoryTokenRegistry()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def token_issuer(config) -> TokenIssuer:
    return TokenIssuer(config, TEST_SIGNING_KEY)


@pytest.fixture
def engine(config, challenge_store, notifier) -> SecondFactorEngine:
    return SecondFactorEngine(config, challenge_store, notifier, TEST_CODE_HASH_KEY)


@pytest.fixture
def mock_rate_limiter():
    """Limiter that never locks anyone out."""
    mock = Mock(spec=LoginRateLimiter)
    mock.record_failure.return_value = 1
    return mock


@pytest.fixture
def mock_issue_limiter():
    """Limiter that lets every code request through."""
    return Mock(spec=ChallengeIssueLimiter)


@pytest.fixture
def mock_security_logger():
    return Mock(spec=SecurityLogger)


@pytest.fixture
def login_service(
    config, credential_gateway, engine, token_issuer, mock_rate_limiter, mock_security_logger,
    mock_issue_limiter,
) -> LoginService:
    return LoginService(
        config,
        credential_gateway,
        engine,
        token_issuer,
        mock_rate_limiter,
        mock_security_logger,
        mock_issue_limiter,
    )


@pytest.fixture
def recovery_service(
    config, credential_gateway, engine, token_issuer, token_registry, mock_security_logger,
    mock_issue_limiter,
) -> RecoveryService:
    return RecoveryService(
        credential_gateway,
        engine,
        token_issuer,
        token_registry,
        PasswordPolicyValidator(config),
        mock_security_logger,
        mock_issue_limiter,
    )


@pytest.fixture
def context() -> RequestContext:
    return RequestContext(ip_address="203.0.113.7", user_agent="pytest")


# =============================================================================
# INFRASTRUCTURE FIXTURES (skip when Vault is not configured)
# =============================================================================


def _require_vault() -> None:
    if not os.getenv("VAULT_ADDR"):
        pytest.skip("Vault not configured")


@pytest.fixture(scope="session")
def valkey():
    """Session-scoped ValkeyClient."""
    _require_vault()
    from clients.valkey_client import ValkeyClient
    from clients.vault_client import get_valkey_url

    client = ValkeyClient(get_valkey_url())
    yield client
    client.close()


@pytest.fixture(scope="session")
def db():
    """Session-scoped PostgresClient."""
    _require_vault()
    from clients.postgres_client import PostgresClient
    from clients.vault_client import get_database_url

    client = PostgresClient(get_database_url())
    yield client
    client.close()
