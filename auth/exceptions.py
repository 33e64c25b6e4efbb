"""Typed exceptions for auth failures.

Each class carries the error type, HTTP status and public message used when
the orchestrator boundary converts it into the uniform failure payload.
"""


class AuthError(Exception):
    """Base class for authentication/authorization errors."""

    error_type = "Auth"
    status_code = 400
    public_message = "The request could not be completed"
    default_field = ""

    def __init__(self, message: str | None = None, field: str | None = None):
        self.field = self.default_field if field is None else field
        super().__init__(message or self.public_message)


class ValidationError(AuthError):
    """Malformed input. User-correctable."""

    error_type = "Validation"
    status_code = 400
    public_message = "Invalid request"


class AuthenticationError(AuthError):
    """
    Bad credentials, unknown identifier, or inactive account.

    Always raised with the same message so callers cannot tell which.
    """

    error_type = "Authentication"
    status_code = 401
    public_message = "invalid credentials"

    def __init__(self):
        super().__init__(self.public_message)


class RateLimitedError(AuthError):
    """Too many failed attempts. Client should wait before retrying."""

    error_type = "RateLimited"
    status_code = 429

    def __init__(self, retry_after_seconds: int):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(f"Rate limited. Retry after {retry_after_seconds} seconds.")


class ChallengeError(AuthError):
    """Base class for one-time code challenge lifecycle failures."""

    default_field = "challenge_id"


class NotFoundError(ChallengeError):
    """Challenge id unknown (or issued for a different purpose)."""

    error_type = "ChallengeNotFound"
    status_code = 404
    public_message = "Verification challenge not found"


class ExpiredError(ChallengeError):
    """Challenge is past its expiry or was already used."""

    error_type = "ChallengeExpired"
    status_code = 410
    public_message = "Verification code has expired or was already used"


class AttemptsExceededError(ChallengeError):
    """Challenge exhausted its attempts. A new code must be requested."""

    error_type = "AttemptsExceeded"
    status_code = 429
    public_message = "Too many attempts. Please request a new code"


class InvalidCodeError(ChallengeError):
    """Submitted code does not match."""

    error_type = "InvalidCode"
    status_code = 401
    public_message = "Invalid verification code"

    def __init__(self, remaining_attempts: int):
        self.remaining_attempts = remaining_attempts
        super().__init__(self.public_message, field="code")


class InvalidTokenError(AuthError):
    """
    Token is malformed, expired, badly signed, or of the wrong purpose.

    Used for access, pending second-factor and reset tokens alike.
    """

    error_type = "InvalidToken"
    status_code = 401
    public_message = "Invalid or expired token"


class TokenReusedError(AuthError):
    """Single-use token was already redeemed."""

    error_type = "TokenReused"
    status_code = 409
    public_message = "This reset link has already been used"


class PolicyError(AuthError):
    """New password does not satisfy the password policy."""

    error_type = "PasswordPolicy"
    status_code = 422
    public_message = "Password does not meet the password policy"

    def __init__(self, violations: list[str]):
        self.violations = violations
        super().__init__(self.public_message, field="new_secret")


class DependencyUnavailableError(AuthError):
    """An external store or notifier timed out or could not be reached."""

    error_type = "DependencyUnavailable"
    status_code = 503
    public_message = "A required service is temporarily unavailable"

    def __init__(self, dependency: str):
        self.dependency = dependency
        super().__init__(self.public_message)


class UnexpectedError(AuthError):
    """Anything else. Logged with detail, reported generically."""

    error_type = "System"
    status_code = 500
    public_message = "An internal error occurred"
