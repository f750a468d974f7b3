"""
Configuration management using Pydantic Settings.

Loads configuration from environment variables with MCD_ prefix.
DEPLOY_ENV and DEPLOY_PAGES are also read without the prefix.
"""
from pathlib import Path
from typing import List, Optional

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="MCD_",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Server Configuration
    server_name: str = "multicloud-deploy"
    transport: str = "stdio"

    # Environment selection
    deploy_env: str = Field(
        "production",
        validation_alias=AliasChoices("DEPLOY_ENV", "MCD_DEPLOY_ENV", "deploy_env"),
    )
    deploy_pages: Optional[bool] = Field(
        None,
        validation_alias=AliasChoices("DEPLOY_PAGES", "MCD_DEPLOY_PAGES", "deploy_pages"),
    )

    # Files and directories
    config_file: Path = Path("deployments-secrets.json")
    codebase_path: Path = Path(".")
    history_dir: Path = Path("./.multicloud-deploy/history")
    log_dir: Path = Path("./.multicloud-deploy/logs")
    schema_file: str = "schema.sql"
    migrations_dir: str = "migrations"
    cors_file: str = "r2-cors.json"
    static_site_dir: str = "public"

    # Worker build (generated wrangler config)
    worker_config_file: str = "wrangler.json"
    worker_main: str = "src/index.ts"
    worker_compatibility_date: str = "2024-01-01"
    bucket_binding: Optional[str] = None
    database_binding: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # History
    history_limit: int = 50

    # Command execution
    max_retries: int = 3
    base_retry_delay: float = 1.0
    query_timeout: float = 15.0
    mutation_timeout: float = 60.0
    deploy_timeout: float = 300.0
    terminate_grace: float = 5.0

    # URL templates
    compute_url_suffix: str = "workers.dev"
    static_url_suffix: str = "pages.dev"

    # Provider resources
    cors_allowed_origins: List[str] = ["*"]
    required_gcp_apis: List[str] = [
        "aiplatform.googleapis.com",
        "vision.googleapis.com",
    ]
    required_secret_keys: List[str] = [
        "RAPIDAPI_KEY",
        "RAPIDAPI_HOST",
        "RAPIDAPI_ENDPOINT",
        "GOOGLE_VISION_API_KEY",
        "GOOGLE_VERTEX_PROJECT_ID",
        "GOOGLE_VERTEX_LOCATION",
        "GOOGLE_VISION_ENDPOINT",
        "GOOGLE_SERVICE_ACCOUNT_EMAIL",
        "GOOGLE_SERVICE_ACCOUNT_PRIVATE_KEY",
    ]

    # Optional Cloudflare API access (bucket domain lookup)
    cloudflare_api_token: SecretStr | None = None
    cloudflare_api_base: str = "https://api.cloudflare.com/client/v4"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of {valid_levels}")
        return v_upper

    @field_validator("history_limit")
    @classmethod
    def validate_history_limit(cls, v: int) -> int:
        if v < 1:
            raise ValueError("history_limit must be at least 1")
        return v

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_retries cannot be negative")
        return v

    @field_validator("query_timeout", "mutation_timeout", "deploy_timeout", "terminate_grace")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate timeouts are positive."""
        if v <= 0:
            raise ValueError("Timeouts must be positive")
        return v

    def ensure_directories(self) -> None:
        """Create required directories if they don't exist."""
        for directory in [self.history_dir, self.log_dir]:
            directory.mkdir(parents=True, exist_ok=True)


# Singleton instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create settings singleton instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
