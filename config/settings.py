"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ===================
    # SUPABASE
    # ===================
    supabase_url: str = Field(
        ...,
        description="Supabase project URL"
    )
    supabase_key: str = Field(
        ...,
        description="Supabase anon/public key"
    )
    supabase_service_key: Optional[str] = Field(
        None,
        description="Supabase service role key (for admin operations)"
    )

    # ===================
    # IMPORT LIMITS
    # ===================
    import_max_rows: int = Field(
        default=500,
        ge=1,
        le=5000,
        description="Maximum rows accepted by a single commit"
    )
    import_batch_size: int = Field(
        default=25,
        ge=1,
        le=500,
        description="Rows per commit batch"
    )
    max_upload_size_mb: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Maximum spreadsheet upload size in MB"
    )

    # ===================
    # COLLABORATORS
    # ===================
    dedup_window_hours: int = Field(
        default=72,
        ge=1,
        le=720,
        description="Look-back window for duplicate detection"
    )
    collaborator_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="Deadline for inference, dedup and create calls"
    )
    import_run_ttl_minutes: int = Field(
        default=120,
        ge=1,
        le=1440,
        description="How long commit runs are kept for retries"
    )

    # ===================
    # MATCHING
    # ===================
    template_suggestion_threshold: float = Field(
        default=0.5,
        ge=0,
        le=1,
        description="Minimum header similarity for a template suggestion"
    )
    template_suggestion_limit: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Maximum template suggestions returned"
    )
    agency_suggestion_limit: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Maximum fuzzy agency candidates returned"
    )
    agency_max_edit_distance: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Levenshtein ceiling for agency candidates"
    )

    # ===================
    # SHIPMENT DEFAULTS
    # ===================
    tracking_code_prefix: str = Field(
        default="DUY-",
        max_length=10,
        description="Prefix for generated tracking codes"
    )
    default_package_size: str = Field(
        default="mediano",
        pattern="^(chico|mediano|grande)$",
        description="Package size when neither row nor defaults provide one"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins (JSON list in env)"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If required env vars are missing or invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
