"""Password policy checks for new secrets."""

import string
from typing import Protocol

from auth.config import AuthConfig
from auth.types import PolicyResult


class PasswordPolicy(Protocol):
    def validate(self, secret: str) -> PolicyResult: ...


class PasswordPolicyValidator:
    """Length and character-class rules driven by AuthConfig."""

    def __init__(self, config: AuthConfig):
        self._config = config

    def validate(self, secret: str) -> PolicyResult:
        violations = []
        secret = secret or ""

        if len(secret) < self._config.password_min_length:
            violations.append(
                f"Must be at least {self._config.password_min_length} characters long"
            )
        if len(secret) > self._config.password_max_length:
            violations.append(
                f"Must be at most {self._config.password_max_length} characters long"
            )
        if self._config.password_require_uppercase and not any(c.isupper() for c in secret):
            violations.append("Must contain an uppercase letter")
        if self._config.password_require_lowercase and not any(c.islower() for c in secret):
            violations.append("Must contain a lowercase letter")
        if self._config.password_require_digit and not any(c.isdigit() for c in secret):
            violations.append("Must contain a digit")
        if self._config.password_require_symbol and not any(
            c in string.punctuation for c in secret
        ):
            violations.append("Must contain a symbol")
        if secret != secret.strip():
            violations.append("Must not start or end with whitespace")

        return PolicyResult(ok=not violations, violations=violations)
