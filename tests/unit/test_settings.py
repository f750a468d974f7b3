"""
Unit tests for config/settings.py

Tests configuration loading, validation, and directory creation.
"""
import pytest
from pydantic import ValidationError as PydanticValidationError

from multicloud_deploy.config import settings as settings_module
from multicloud_deploy.config.settings import Settings, get_settings


# ── Default values ──────────────────────────────────────────────────────────

def test_default_server_name():
    s = Settings(server_name="test-server")
    assert s.server_name == "test-server"


def test_default_transport():
    s = Settings()
    assert s.transport == "stdio"


def test_default_retry_policy():
    s = Settings()
    assert s.max_retries == 3
    assert s.base_retry_delay == 1.0


def test_default_timeouts():
    s = Settings()
    assert s.query_timeout < s.mutation_timeout < s.deploy_timeout


def test_default_url_suffixes():
    s = Settings()
    assert s.compute_url_suffix == "workers.dev"
    assert s.static_url_suffix == "pages.dev"


def test_default_required_apis():
    s = Settings()
    assert "aiplatform.googleapis.com" in s.required_gcp_apis
    assert "vision.googleapis.com" in s.required_gcp_apis


def test_default_history_limit():
    s = Settings()
    assert s.history_limit == 50


def test_default_codebase_layout():
    s = Settings()
    assert s.schema_file == "schema.sql"
    assert s.migrations_dir == "migrations"
    assert s.worker_config_file == "wrangler.json"
    assert s.worker_main == "src/index.ts"


def test_bindings_default_to_resource_names():
    s = Settings()
    assert s.bucket_binding is None
    assert s.database_binding is None


def test_no_api_token_by_default():
    s = Settings()
    assert s.cloudflare_api_token is None


# ── Environment variables ───────────────────────────────────────────────────

def test_prefixed_env_vars(monkeypatch):
    monkeypatch.setenv("MCD_MAX_RETRIES", "5")
    monkeypatch.setenv("MCD_STATIC_URL_SUFFIX", "acme.pages.dev")
    s = Settings()
    assert s.max_retries == 5
    assert s.static_url_suffix == "acme.pages.dev"


def test_unprefixed_deploy_env(monkeypatch):
    monkeypatch.setenv("DEPLOY_ENV", "staging")
    assert Settings().deploy_env == "staging"


def test_deploy_pages_unset_is_none(monkeypatch):
    monkeypatch.delenv("DEPLOY_PAGES", raising=False)
    monkeypatch.delenv("MCD_DEPLOY_PAGES", raising=False)
    assert Settings().deploy_pages is None


def test_api_token_is_secret(monkeypatch):
    monkeypatch.setenv("MCD_CLOUDFLARE_API_TOKEN", "very-secret")
    s = Settings()
    assert s.cloudflare_api_token.get_secret_value() == "very-secret"
    assert "very-secret" not in repr(s)


# ── Validation ──────────────────────────────────────────────────────────────

def test_log_level_normalized():
    s = Settings(log_level="debug")
    assert s.log_level == "DEBUG"


def test_invalid_log_level():
    with pytest.raises(PydanticValidationError):
        Settings(log_level="VERBOSE")


def test_negative_retries_rejected():
    with pytest.raises(PydanticValidationError):
        Settings(max_retries=-1)


def test_zero_history_limit_rejected():
    with pytest.raises(PydanticValidationError):
        Settings(history_limit=0)


@pytest.mark.parametrize("field", ["query_timeout", "mutation_timeout", "deploy_timeout", "terminate_grace"])
def test_non_positive_timeouts_rejected(field):
    with pytest.raises(PydanticValidationError):
        Settings(**{field: 0})


# ── Directories and singleton ───────────────────────────────────────────────

def test_ensure_directories(tmp_path):
    s = Settings(history_dir=tmp_path / "state" / "history", log_dir=tmp_path / "state" / "logs")
    s.ensure_directories()
    assert s.history_dir.is_dir()
    assert s.log_dir.is_dir()


def test_get_settings_singleton(monkeypatch):
    monkeypatch.setattr(settings_module, "_settings", None)
    first = get_settings()
    assert get_settings() is first
