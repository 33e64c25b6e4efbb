"""Authentication configuration."""

from pydantic import BaseModel, Field


class AuthConfig(BaseModel):
    """
    Authentication configuration.

    All durations are in their natural units (minutes for short-lived
    challenges and tokens, seconds for network timeouts). Secrets are not
    configuration: signing and hashing keys come from Vault.
    """

    # One-time code challenges (second factor and recovery)
    challenge_expiry_minutes: int = Field(
        default=5,
        description="How long an issued one-time code remains valid",
        ge=1,
        le=10,
    )
    challenge_max_attempts: int = Field(
        default=5,
        description="Failed verifications allowed before a challenge is exhausted",
        ge=1,
        le=10,
    )
    otp_length: int = Field(
        default=6,
        description="Number of digits in a one-time code",
        ge=4,
        le=10,
    )

    # Tokens
    access_token_expiry_minutes: int = Field(
        default=60,
        description="Access token lifetime",
        ge=5,
        le=1440,
    )
    pending_token_expiry_minutes: int = Field(
        default=5,
        description="Lifetime of the token handed out while a second factor is pending",
        ge=1,
        le=10,
    )
    reset_token_expiry_minutes: int = Field(
        default=10,
        description="Lifetime of the single-use password reset token",
        ge=5,
        le=60,
    )
    token_issuer: str = Field(
        default="docarchive-auth",
        description="JWT 'iss' claim",
    )
    token_audience: str = Field(
        default="docarchive-api",
        description="JWT 'aud' claim",
    )
    token_algorithm: str = Field(
        default="HS256",
        description="JWT signing algorithm (HMAC family)",
        pattern=r"^HS(256|384|512)$",
    )

    # Login policy
    second_factor_enforced: bool = Field(
        default=False,
        description="Require a second factor for every account, not only flagged ones",
    )
    login_failure_limit: int = Field(
        default=5,
        description="Failed logins per identifier before lockout",
        ge=1,
        le=20,
    )
    login_failure_window_minutes: int = Field(
        default=15,
        description="Failure counter window (sliding, reset on each failure)",
        ge=5,
        le=60,
    )
    challenge_issue_limit: int = Field(
        default=5,
        description="One-time codes issued per identifier and purpose within the window",
        ge=1,
        le=20,
    )
    challenge_issue_window_minutes: int = Field(
        default=15,
        description="Code issue counter window (sliding, reset on each request)",
        ge=5,
        le=60,
    )

    # Password policy
    password_min_length: int = Field(
        default=8,
        description="Minimum password length",
        ge=6,
        le=128,
    )
    password_max_length: int = Field(
        default=128,
        description="Longest secret accepted for hashing, at login or reset",
        ge=32,
        le=1024,
    )
    password_require_uppercase: bool = True
    password_require_lowercase: bool = True
    password_require_digit: bool = True
    password_require_symbol: bool = True

    # External dependencies
    dependency_timeout_seconds: float = Field(
        default=5.0,
        description="Upper bound for any single call to Valkey, Postgres or the email gateway",
        gt=0,
        le=30,
    )

    # Application
    app_name: str = Field(
        default="DocArchive",
        description="Application name shown in verification emails",
    )
