"""
Unit tests for utils/validation.py

Tests every validator with valid and invalid inputs.
"""
import pytest

from multicloud_deploy.exceptions import ValidationError
from multicloud_deploy.utils.validation import (
    validate_deployment_id,
    validate_resource_name,
    validate_secret_key,
    validate_secrets,
    validate_sql_identifier,
)


# ── validate_resource_name ──────────────────────────────────────────────────

class TestValidateResourceName:
    def test_simple_name(self):
        assert validate_resource_name("app-worker") == "app-worker"

    def test_single_character(self):
        assert validate_resource_name("a") == "a"

    def test_digits(self):
        assert validate_resource_name("db2") == "db2"

    def test_uppercase_raises(self):
        with pytest.raises(ValidationError):
            validate_resource_name("App-Worker")

    def test_underscore_raises(self):
        with pytest.raises(ValidationError):
            validate_resource_name("app_worker")

    def test_leading_hyphen_raises(self):
        with pytest.raises(ValidationError):
            validate_resource_name("-worker")

    def test_trailing_hyphen_raises(self):
        with pytest.raises(ValidationError):
            validate_resource_name("worker-")

    def test_shell_chars_raise(self):
        with pytest.raises(ValidationError):
            validate_resource_name("worker;rm")

    def test_empty_raises(self):
        with pytest.raises(ValidationError):
            validate_resource_name("")

    def test_too_long_raises(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_resource_name("a" * 59, "Pages project", max_length=58)
        assert "Pages project name too long" in str(exc_info.value)

    def test_kind_in_message(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_resource_name("Bad", "bucket")
        assert "Invalid bucket name" in str(exc_info.value)


# ── validate_secret_key ─────────────────────────────────────────────────────

class TestValidateSecretKey:
    def test_upper_snake(self):
        assert validate_secret_key("GOOGLE_VISION_API_KEY") == "GOOGLE_VISION_API_KEY"

    def test_leading_underscore(self):
        assert validate_secret_key("_INTERNAL") == "_INTERNAL"

    def test_lowercase_raises(self):
        with pytest.raises(ValidationError):
            validate_secret_key("api_key")

    def test_leading_digit_raises(self):
        with pytest.raises(ValidationError):
            validate_secret_key("1KEY")

    def test_dash_raises(self):
        with pytest.raises(ValidationError):
            validate_secret_key("API-KEY")


# ── validate_secrets ────────────────────────────────────────────────────────

class TestValidateSecrets:
    def test_valid(self):
        assert validate_secrets({"A": "1", "B": 2}, ["A"]) == {"A": "1", "B": "2"}

    def test_missing_required(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_secrets({"A": "1"}, ["A", "B"])
        assert exc_info.value.context["missing"] == ["B"]

    def test_blank_required(self):
        with pytest.raises(ValidationError):
            validate_secrets({"A": "   "}, ["A"])

    def test_invalid_key(self):
        with pytest.raises(ValidationError):
            validate_secrets({"bad-key": "x"})

    def test_no_requirements(self):
        assert validate_secrets({}) == {}


# ── validate_sql_identifier ─────────────────────────────────────────────────

class TestValidateSqlIdentifier:
    def test_valid(self):
        assert validate_sql_identifier("user_uploads") == "user_uploads"

    def test_injection_raises(self):
        with pytest.raises(ValidationError):
            validate_sql_identifier("users; DROP TABLE users")

    def test_quote_raises(self):
        with pytest.raises(ValidationError):
            validate_sql_identifier("users'")


# ── validate_deployment_id ──────────────────────────────────────────────────

class TestValidateDeploymentId:
    def test_environment_name(self):
        assert validate_deployment_id("production") == "production"

    def test_dots_dashes_underscores(self):
        assert validate_deployment_id("team_a.staging-2") == "team_a.staging-2"

    def test_path_traversal_raises(self):
        with pytest.raises(ValidationError):
            validate_deployment_id("../../etc/passwd")

    def test_double_dot_raises(self):
        with pytest.raises(ValidationError):
            validate_deployment_id("a..b")

    def test_leading_dot_raises(self):
        with pytest.raises(ValidationError):
            validate_deployment_id(".hidden")

    def test_slash_raises(self):
        with pytest.raises(ValidationError):
            validate_deployment_id("a/b")
