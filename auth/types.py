"""Pydantic models for auth domain."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class AccountStatus(str, Enum):
    """Credential account status. Only ACTIVE accounts may log in."""

    ACTIVE = "active"
    LOCKED = "locked"
    DISABLED = "disabled"


class ChallengeKind(str, Enum):
    """What a one-time code challenge was issued for."""

    SECOND_FACTOR = "second_factor"
    RECOVERY = "recovery"


class TokenPurpose(str, Enum):
    """Purpose tag embedded in every signed token payload."""

    ACCESS = "access"
    SECOND_FACTOR_PENDING = "second_factor_pending"
    RESET = "reset"


class Credential(BaseModel):
    """A user's credential record, owned by the credential store."""

    user_id: UUID
    identifier: str = Field(..., min_length=1)
    password_hash: str = Field(..., repr=False)
    status: AccountStatus
    alias: str = Field(..., description="Tenant alias the user works under")
    roles: list[str] = Field(default_factory=list)
    email: EmailStr | None = None
    second_factor_required: bool = False

    model_config = {"from_attributes": True}

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE


class CredentialCheck(BaseModel):
    """Outcome of verifying a submitted secret."""

    valid: bool
    user_id: UUID | None = None
    status: AccountStatus | None = None
    credential: Credential | None = Field(default=None, repr=False)


class Challenge(BaseModel):
    """A short-lived one-time code challenge."""

    id: str = Field(..., description="Opaque challenge id")
    kind: ChallengeKind
    owner_user_id: UUID | None = Field(
        ..., description="None for decoy challenges issued to unknown identifiers"
    )
    code_hash: str = Field(..., repr=False)
    created_at: datetime
    expires_at: datetime
    attempts_used: int = Field(default=0, ge=0)
    max_attempts: int = Field(..., ge=1)
    consumed: bool  # Required - fail closed, no default


class PolicyResult(BaseModel):
    """Outcome of a password policy check."""

    ok: bool
    violations: list[str] = Field(default_factory=list)


class IssuedToken(BaseModel):
    """A freshly signed token and the metadata needed to track it."""

    token: str = Field(..., repr=False)
    token_id: str
    purpose: TokenPurpose
    expires_at: datetime


class AccessClaims(BaseModel):
    """Validated claims of an access token."""

    user_id: UUID
    alias: str
    roles: list[str]
    token_id: str
    issued_at: datetime
    expires_at: datetime


class PendingSecondFactorClaims(BaseModel):
    """Validated claims of a pending second-factor token. No authorization claims."""

    user_id: UUID
    challenge_id: str
    token_id: str
    expires_at: datetime


class ResetClaims(BaseModel):
    """Validated claims of a password reset token."""

    user_id: UUID
    challenge_id: str
    token_id: str
    expires_at: datetime


class VerifyResult(BaseModel):
    """A challenge that was just verified (and consumed)."""

    challenge_id: str
    kind: ChallengeKind
    user_id: UUID | None


class RequestContext(BaseModel):
    """
    Caller information passed explicitly into every orchestrator call.

    Built per request by RequestContextMiddleware; there is no ambient
    session object.
    """

    ip_address: str | None = None
    user_agent: str | None = None
    bearer_token: str | None = Field(default=None, repr=False)


# =============================================================================
# RESPONSE DATA (camelCase on the wire)
# =============================================================================


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChallengeIssued(_WireModel):
    challenge_id: str
    expires_at: datetime


class LoginResult(_WireModel):
    """Either a final access token or a pending second-factor challenge."""

    requires_second_factor: bool
    challenge_id: str | None = None
    pending_token: str | None = None
    access_token: str | None = None
    expires_at: datetime


class AccessGrant(_WireModel):
    access_token: str
    expires_at: datetime


class RecoveryStarted(_WireModel):
    challenge_id: str
    expires_at: datetime


class ResetTokenIssued(_WireModel):
    reset_token: str
    expires_at: datetime


class PasswordResetResult(_WireModel):
    success: bool


# =============================================================================
# REQUEST BODIES
# =============================================================================


class LoginRequest(_WireModel):
    identifier: str = ""
    secret: str = ""


class VerifyCodeRequest(_WireModel):
    challenge_id: str = ""
    code: str = ""


class RecoveryStartRequest(_WireModel):
    identifier: str = ""


class ResetPasswordRequest(_WireModel):
    new_secret: str = ""
