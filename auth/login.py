"""Login service - password check plus optional one-time code second factor."""

import logging

from auth.config import AuthConfig
from auth.credentials import CredentialGateway
from auth.exceptions import (
    AttemptsExceededError,
    AuthenticationError,
    ChallengeError,
    InvalidTokenError,
    RateLimitedError,
    UnexpectedError,
    ValidationError,
)
from auth.rate_limiter import ChallengeIssueLimiter, LoginRateLimiter
from auth.second_factor import SecondFactorEngine
from auth.security_logger import SecurityEvent, SecurityLogger, log_committed
from auth.tokens import TokenIssuer
from auth.types import AccessGrant, ChallengeKind, LoginResult, RequestContext

logger = logging.getLogger(__name__)


class LoginService:
    """Orchestrates password login and second-factor completion.

    Handles:
    - Credential checks (with enumeration protection)
    - Per-identifier failure counting
    - Second-factor challenge issue and verification
    - Access token issue
    """

    def __init__(
        self,
        config: AuthConfig,
        credential_gateway: CredentialGateway,
        second_factor_engine: SecondFactorEngine,
        token_issuer: TokenIssuer,
        rate_limiter: LoginRateLimiter,
        security_logger: SecurityLogger,
        issue_limiter: ChallengeIssueLimiter,
    ):
        self._config = config
        self._credentials = credential_gateway
        self._second_factor = second_factor_engine
        self._tokens = token_issuer
        self._rate_limiter = rate_limiter
        self._security_logger = security_logger
        self._issue_limiter = issue_limiter

    def validate_login(
        self,
        identifier: str,
        secret: str,
        context: RequestContext,
    ) -> LoginResult:
        """Check identifier + secret and start a session or a second factor.

        Flow:
        1. Reject empty input
        2. Refuse identifiers over the failure limit
        3. Verify the secret (unknown identifiers cost a dummy hash check)
        4. On failure: count it, log, raise the uniform AuthenticationError
        5. Second factor required: issue challenge + pending token
        6. Otherwise: reset the counter and issue an access token

        Raises:
            ValidationError: If identifier or secret is empty.
            RateLimitedError: If the identifier is locked out or has requested
                too many second-factor codes.
            AuthenticationError: Unknown identifier, wrong secret or inactive account.
            DependencyUnavailableError: If a store or the notifier is unreachable.
        """
        if not identifier or not identifier.strip():
            raise ValidationError("Identifier is required", field="identifier")
        if not secret:
            raise ValidationError("Secret is required", field="secret")
        if len(secret) > self._config.password_max_length:
            raise ValidationError("Secret is too long", field="secret")

        identifier = self._credentials.normalize(identifier)

        try:
            self._rate_limiter.check_not_locked(identifier)
        except RateLimitedError:
            self._security_logger.log(
                SecurityEvent.LOGIN_RATE_LIMITED,
                identifier=identifier,
                ip_address=context.ip_address,
                user_agent=context.user_agent,
            )
            raise

        check = self._credentials.verify_credentials(identifier, secret)

        if not check.valid:
            self._rate_limiter.record_failure(identifier)

            if check.user_id is None:
                reason = "unknown_identifier"
            elif check.credential is None:
                reason = "wrong_secret"
            else:
                reason = f"account_{check.status.value}"

            self._security_logger.log(
                SecurityEvent.LOGIN_FAILED,
                identifier=identifier,
                user_id=check.user_id,
                ip_address=context.ip_address,
                user_agent=context.user_agent,
                details={"reason": reason},
            )
            raise AuthenticationError()

        credential = check.credential

        if credential.second_factor_required or self._config.second_factor_enforced:
            if not credential.email:
                logger.error(f"User {credential.user_id} requires a second factor but has no email")
                raise UnexpectedError("Second factor delivery address missing")

            try:
                self._issue_limiter.check_rate_limit(identifier, ChallengeKind.SECOND_FACTOR)
            except RateLimitedError:
                self._security_logger.log(
                    SecurityEvent.CHALLENGE_ISSUE_RATE_LIMITED,
                    identifier=identifier,
                    user_id=credential.user_id,
                    ip_address=context.ip_address,
                    user_agent=context.user_agent,
                    details={"kind": ChallengeKind.SECOND_FACTOR.value},
                )
                raise

            issued = self._second_factor.issue_challenge(
                credential.user_id, ChallengeKind.SECOND_FACTOR, credential.email
            )
            pending = self._tokens.issue_pending_token(issued.challenge_id, credential.user_id)

            self._security_logger.log(
                SecurityEvent.SECOND_FACTOR_ISSUED,
                identifier=identifier,
                user_id=credential.user_id,
                ip_address=context.ip_address,
                user_agent=context.user_agent,
            )

            return LoginResult(
                requires_second_factor=True,
                challenge_id=issued.challenge_id,
                pending_token=pending.token,
                expires_at=issued.expires_at,
            )

        self._rate_limiter.reset(identifier)
        access = self._tokens.issue_access_token(credential)

        self._security_logger.log(
            SecurityEvent.LOGIN_SUCCEEDED,
            identifier=identifier,
            user_id=credential.user_id,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )

        return LoginResult(
            requires_second_factor=False,
            access_token=access.token,
            expires_at=access.expires_at,
        )

    def verify_second_factor(
        self,
        challenge_id: str,
        code: str,
        context: RequestContext,
        pending_token: str | None = None,
        channel: str = "",
    ) -> AccessGrant:
        """Complete a login by verifying the emailed code.

        Flow:
        1. Reject empty input
        2. If a pending token is presented, it must name this challenge
        3. Verify (and consume) the challenge
        4. Re-read the credential; it must still be active
        5. Reset the failure counter and issue an access token

        `channel` is reserved for delivery-channel selection and is ignored.

        Raises:
            ValidationError: If challenge_id or code is empty.
            InvalidTokenError: If the pending token is invalid or for another challenge.
            ChallengeError: Any challenge failure from SecondFactorEngine.
            AuthenticationError: If the account is gone or no longer active.
        """
        if not challenge_id:
            raise ValidationError("Challenge id is required", field="challenge_id")
        if not code or not code.strip():
            raise ValidationError("Code is required", field="code")

        if pending_token:
            claims = self._tokens.decode_pending_token(pending_token)
            if claims.challenge_id != challenge_id:
                raise InvalidTokenError("Token does not match challenge", field="token")

        try:
            result = self._second_factor.verify_challenge(
                challenge_id, code, ChallengeKind.SECOND_FACTOR, channel
            )
        except ChallengeError as e:
            event = (
                SecurityEvent.CHALLENGE_EXHAUSTED
                if isinstance(e, AttemptsExceededError)
                else SecurityEvent.SECOND_FACTOR_FAILED
            )
            self._security_logger.log(
                event,
                ip_address=context.ip_address,
                user_agent=context.user_agent,
                details={"reason": e.error_type},
            )
            raise

        credential = self._credentials.get(result.user_id) if result.user_id else None
        if credential is None or not credential.is_active:
            self._security_logger.log(
                SecurityEvent.LOGIN_FAILED,
                user_id=result.user_id,
                ip_address=context.ip_address,
                user_agent=context.user_agent,
                details={"reason": "inactive_after_second_factor"},
            )
            raise AuthenticationError()

        self._rate_limiter.reset(credential.identifier)
        access = self._tokens.issue_access_token(credential)

        log_committed(
            self._security_logger,
            SecurityEvent.SECOND_FACTOR_VERIFIED,
            identifier=credential.identifier,
            user_id=credential.user_id,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )

        return AccessGrant(access_token=access.token, expires_at=access.expires_at)
