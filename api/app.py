"""Application factory and production wiring."""

import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI

from api.account import create_account_router
from api.base import success_response
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware
from auth.api import create_auth_router
from auth.challenge_store import ValkeyChallengeStore
from auth.claims import ClaimValidationGate
from auth.config import AuthConfig
from auth.credentials import CredentialGateway, PostgresCredentialStore, SecretHasher
from auth.login import LoginService
from auth.notifier import EmailCodeNotifier
from auth.orchestrator import AuthOrchestrator
from auth.password_policy import PasswordPolicyValidator
from auth.rate_limiter import ChallengeIssueLimiter, LoginRateLimiter
from auth.recovery import RecoveryService
from auth.second_factor import SecondFactorEngine
from auth.security_logger import SecurityLogger
from auth.security_middleware import RequestContextMiddleware
from auth.token_registry import ValkeyTokenRegistry
from auth.tokens import TokenIssuer
from clients.email_client import EmailGatewayClient
from clients.postgres_client import PostgresClient
from clients.valkey_client import ValkeyClient
from clients.vault_client import (
    get_auth_secrets,
    get_database_url,
    get_email_config,
    get_valkey_url,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once at process start. LOG_LEVEL env overrides the default."""
    logging.basicConfig(
        level=(level or os.getenv("LOG_LEVEL", "INFO")).upper(),
        format=LOG_FORMAT,
    )


def create_app(orchestrator: AuthOrchestrator, claim_gate: ClaimValidationGate) -> FastAPI:
    """Build the FastAPI app around already-wired services."""
    app = FastAPI(title="DocArchive Auth")

    # Added last runs first: request id is set before the context is built
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_error_handlers(app)

    app.include_router(create_auth_router(orchestrator), prefix="/auth")
    app.include_router(create_account_router(claim_gate), prefix="/account")

    @app.get("/health")
    async def health():
        return success_response({"status": "ok"})

    return app


def build_app(config: AuthConfig | None = None) -> FastAPI:
    """Wire production collaborators from Vault-held secrets.

    Fails fast if Vault or any backing service is misconfigured.
    """
    load_dotenv()
    configure_logging()

    config = config or AuthConfig()
    timeout = config.dependency_timeout_seconds
    auth_secrets = get_auth_secrets()

    valkey = ValkeyClient(get_valkey_url(), timeout_seconds=timeout)
    postgres = PostgresClient(get_database_url(), timeout_seconds=timeout)
    email_config = get_email_config()
    email_client = EmailGatewayClient(
        gateway_url=email_config["gateway_url"],
        api_key=email_config["api_key"],
        hmac_secret=email_config["hmac_secret"],
        timeout_seconds=timeout,
    )

    security_logger = SecurityLogger(postgres)
    issue_limiter = ChallengeIssueLimiter(valkey, config)
    credential_gateway = CredentialGateway(PostgresCredentialStore(postgres), SecretHasher())
    token_issuer = TokenIssuer(config, auth_secrets["signing_key"])
    second_factor = SecondFactorEngine(
        config,
        ValkeyChallengeStore(valkey),
        EmailCodeNotifier(email_client, config),
        auth_secrets["code_hash_key"],
    )

    login_service = LoginService(
        config,
        credential_gateway,
        second_factor,
        token_issuer,
        LoginRateLimiter(valkey, config),
        security_logger,
        issue_limiter,
    )
    recovery_service = RecoveryService(
        credential_gateway,
        second_factor,
        token_issuer,
        ValkeyTokenRegistry(valkey),
        PasswordPolicyValidator(config),
        security_logger,
        issue_limiter,
    )

    logger.info("Auth services wired")
    return create_app(
        AuthOrchestrator(login_service, recovery_service),
        ClaimValidationGate(token_issuer),
    )
