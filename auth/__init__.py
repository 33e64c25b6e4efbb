"""Authentication, recovery and claim validation modules."""

from auth.exceptions import (
    AuthError,
    ValidationError,
    AuthenticationError,
    RateLimitedError,
    ChallengeError,
    NotFoundError,
    ExpiredError,
    AttemptsExceededError,
    InvalidCodeError,
    InvalidTokenError,
    TokenReusedError,
    PolicyError,
    DependencyUnavailableError,
    UnexpectedError,
)
from auth.types import (
    AccountStatus,
    ChallengeKind,
    TokenPurpose,
    Credential,
    Challenge,
    RequestContext,
    LoginResult,
    AccessGrant,
    RecoveryStarted,
    ResetTokenIssued,
    PasswordResetResult,
)
from auth.config import AuthConfig
from auth.credentials import CredentialGateway, PostgresCredentialStore, SecretHasher
from auth.challenge_store import InMemoryChallengeStore, ValkeyChallengeStore
from auth.token_registry import InMemoryTokenRegistry, ValkeyTokenRegistry
from auth.tokens import TokenIssuer
from auth.notifier import EmailCodeNotifier
from auth.password_policy import PasswordPolicyValidator
from auth.rate_limiter import LoginRateLimiter
from auth.security_logger import SecurityLogger, SecurityEvent
from auth.second_factor import SecondFactorEngine
from auth.login import LoginService
from auth.recovery import RecoveryService
from auth.claims import ClaimValidationGate, ClaimOk, ClaimRejected, ClaimRejection
from auth.orchestrator import AuthOrchestrator, AuthOutcome
from auth.security_middleware import RequestContextMiddleware
from auth.api import create_auth_router
