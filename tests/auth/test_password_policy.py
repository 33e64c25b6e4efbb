"""Tests for PasswordPolicyValidator."""

import pytest

from auth.config import AuthConfig
from auth.password_policy import PasswordPolicyValidator


@pytest.fixture
def policy(config) -> PasswordPolicyValidator:
    return PasswordPolicyValidator(config)


class TestDefaultPolicy:
    def test_strong_password_passes(self, policy):
        result = policy.validate("Strong#Pass1")
        assert result.ok is True
        assert result.violations == []

    def test_weak_password_lists_every_violation(self, policy):
        result = policy.validate("Weak")
        assert result.ok is False
        assert any("8 characters" in v for v in result.violations)
        assert "Must contain a digit" in result.violations
        assert "Must contain a symbol" in result.violations

    @pytest.mark.parametrize("secret,violation", [
        ("strong#pass1", "Must contain an uppercase letter"),
        ("STRONG#PASS1", "Must contain a lowercase letter"),
        ("Strong#Passs", "Must contain a digit"),
        ("StrongPass12", "Must contain a symbol"),
        (" Strong#Pass1", "Must not start or end with whitespace"),
    ])
    def test_single_violation(self, policy, secret, violation):
        result = policy.validate(secret)
        assert result.violations == [violation]

    def test_empty_password(self, policy):
        assert policy.validate("").ok is False


class TestConfiguredPolicy:
    def test_relaxed_character_classes(self):
        policy = PasswordPolicyValidator(AuthConfig(
            password_require_uppercase=False,
            password_require_symbol=False,
        ))
        assert policy.validate("lowercase1").ok is True

    def test_longer_minimum(self):
        policy = PasswordPolicyValidator(AuthConfig(password_min_length=16))
        assert policy.validate("Strong#Pass1").ok is False


class TestMaximumLength:
    def test_over_long_secret_rejected(self, policy, config):
        result = policy.validate("Aa1#" + "x" * config.password_max_length)
        assert result.violations == [f"Must be at most {config.password_max_length} characters long"]

    def test_secret_at_limit_passes(self, policy, config):
        secret = "Aa1#" + "x" * (config.password_max_length - 4)
        assert policy.validate(secret).ok is True
