"""Account recovery - emailed one-time code, then a single-use reset token.

Recovery state is never stored as such. It follows from the recovery
challenge (issued / verified) and the consumed-token registry (reset done).
"""

import logging

from auth.credentials import CredentialGateway
from auth.exceptions import (
    AttemptsExceededError,
    ChallengeError,
    InvalidTokenError,
    PolicyError,
    RateLimitedError,
    TokenReusedError,
    ValidationError,
)
from auth.password_policy import PasswordPolicy
from auth.rate_limiter import ChallengeIssueLimiter
from auth.second_factor import SecondFactorEngine
from auth.security_logger import SecurityEvent, SecurityLogger, log_committed
from auth.token_registry import ConsumedTokenRegistry
from auth.tokens import TokenIssuer
from auth.types import (
    ChallengeKind,
    PasswordResetResult,
    RecoveryStarted,
    RequestContext,
    ResetTokenIssued,
)

logger = logging.getLogger(__name__)


class RecoveryService:
    """Orchestrates the start, verify and reset steps of password recovery."""

    def __init__(
        self,
        credential_gateway: CredentialGateway,
        second_factor_engine: SecondFactorEngine,
        token_issuer: TokenIssuer,
        token_registry: ConsumedTokenRegistry,
        password_policy: PasswordPolicy,
        security_logger: SecurityLogger,
        issue_limiter: ChallengeIssueLimiter,
    ):
        self._credentials = credential_gateway
        self._second_factor = second_factor_engine
        self._tokens = token_issuer
        self._registry = token_registry
        self._policy = password_policy
        self._security_logger = security_logger
        self._issue_limiter = issue_limiter

    def recovery_start(self, identifier: str, context: RequestContext) -> RecoveryStarted:
        """Send a recovery code to the account's email address.

        Unknown, inactive or address-less accounts get a decoy challenge with
        the same response shape, so the caller cannot tell them apart.

        Requests are counted per identifier before the account is looked up,
        so the issue limit applies to known and unknown identifiers alike.

        Raises:
            ValidationError: If identifier is empty.
            RateLimitedError: If too many codes were requested for the identifier.
            DependencyUnavailableError: If the store or notifier is unreachable.
        """
        if not identifier or not identifier.strip():
            raise ValidationError("Identifier is required", field="identifier")

        identifier = self._credentials.normalize(identifier)

        try:
            self._issue_limiter.check_rate_limit(identifier, ChallengeKind.RECOVERY)
        except RateLimitedError:
            self._security_logger.log(
                SecurityEvent.CHALLENGE_ISSUE_RATE_LIMITED,
                identifier=identifier,
                ip_address=context.ip_address,
                user_agent=context.user_agent,
                details={"kind": ChallengeKind.RECOVERY.value},
            )
            raise

        credential = self._credentials.find(identifier)

        if credential is None or not credential.is_active or not credential.email:
            issued = self._second_factor.issue_decoy_challenge(ChallengeKind.RECOVERY)
            self._security_logger.log(
                SecurityEvent.RECOVERY_UNKNOWN_IDENTIFIER,
                identifier=identifier,
                user_id=credential.user_id if credential else None,
                ip_address=context.ip_address,
                user_agent=context.user_agent,
            )
            return RecoveryStarted(challenge_id=issued.challenge_id, expires_at=issued.expires_at)

        issued = self._second_factor.issue_challenge(
            credential.user_id, ChallengeKind.RECOVERY, credential.email
        )

        self._security_logger.log(
            SecurityEvent.RECOVERY_REQUESTED,
            identifier=identifier,
            user_id=credential.user_id,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )

        return RecoveryStarted(challenge_id=issued.challenge_id, expires_at=issued.expires_at)

    def recovery_verify_otp(
        self,
        challenge_id: str,
        code: str,
        context: RequestContext,
        channel: str = "",
    ) -> ResetTokenIssued:
        """Exchange a correct recovery code for a reset token.

        Challenge errors propagate unchanged.

        Raises:
            ValidationError: If challenge_id or code is empty.
            ChallengeError: Any challenge failure from SecondFactorEngine.
        """
        if not challenge_id:
            raise ValidationError("Challenge id is required", field="challenge_id")
        if not code or not code.strip():
            raise ValidationError("Code is required", field="code")

        try:
            result = self._second_factor.verify_challenge(
                challenge_id, code, ChallengeKind.RECOVERY, channel
            )
        except ChallengeError as e:
            event = (
                SecurityEvent.CHALLENGE_EXHAUSTED
                if isinstance(e, AttemptsExceededError)
                else SecurityEvent.RECOVERY_FAILED
            )
            self._security_logger.log(
                event,
                ip_address=context.ip_address,
                user_agent=context.user_agent,
                details={"reason": e.error_type},
            )
            raise

        reset = self._tokens.issue_reset_token(challenge_id, result.user_id)

        log_committed(
            self._security_logger,
            SecurityEvent.RECOVERY_VERIFIED,
            user_id=result.user_id,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )

        return ResetTokenIssued(reset_token=reset.token, expires_at=reset.expires_at)

    def recovery_reset_password(
        self,
        reset_token: str | None,
        new_secret: str,
        context: RequestContext,
    ) -> PasswordResetResult:
        """Set a new password using a reset token. The token works once.

        Flow:
        1. Decode the token as a reset token
        2. Refuse tokens already redeemed
        3. Check the password policy (a rejected password does not burn the token)
        4. Claim the token id atomically; losers of a race are refused
        5. Store the new hash; if that fails, release the claim and re-raise

        Raises:
            InvalidTokenError: Malformed, expired, wrong-purpose token, or unknown subject.
            TokenReusedError: Token already redeemed.
            PolicyError: New password violates the policy.
            DependencyUnavailableError: If the registry or credential store is unreachable.
        """
        claims = self._tokens.decode_reset_token(reset_token)

        if self._registry.is_consumed(claims.token_id):
            self._log_reuse(claims.user_id, context)
            raise TokenReusedError()

        policy = self._policy.validate(new_secret)
        if not policy.ok:
            self._security_logger.log(
                SecurityEvent.PASSWORD_RESET_REJECTED,
                user_id=claims.user_id,
                ip_address=context.ip_address,
                user_agent=context.user_agent,
                details={"violations": len(policy.violations)},
            )
            raise PolicyError(policy.violations)

        if not self._registry.claim(claims.token_id, claims.expires_at):
            self._log_reuse(claims.user_id, context)
            raise TokenReusedError()

        try:
            self._credentials.set_password(claims.user_id, new_secret)
        except LookupError:
            self._registry.release(claims.token_id)
            logger.warning(f"Reset token presented for missing user {claims.user_id}")
            raise InvalidTokenError("Token subject no longer exists", field="token")
        except Exception:
            self._registry.release(claims.token_id)
            raise

        log_committed(
            self._security_logger,
            SecurityEvent.PASSWORD_RESET,
            user_id=claims.user_id,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )
        logger.info(f"Password reset for user {claims.user_id}")

        return PasswordResetResult(success=True)

    def _log_reuse(self, user_id, context: RequestContext) -> None:
        self._security_logger.log(
            SecurityEvent.RESET_TOKEN_REUSED,
            user_id=user_id,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )
