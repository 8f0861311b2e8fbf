"""
Centralized configuration management.
All environment variables and settings are defined here.
"""
from typing import Optional

from pydantic_settings import BaseSettings
from pydantic import Field, field_validator


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = Field(default="Hybrid Tax Classification Service", alias="APP_NAME")
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000)
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # OpenAI
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    openai_api_url: str = Field(
        default="https://api.openai.com/v1/chat/completions", alias="OPENAI_API_URL"
    )
    openai_model: str = Field(default="gpt-4o-mini", alias="OPENAI_MODEL")
    openai_timeout: int = Field(default=30, alias="OPENAI_TIMEOUT")
    openai_temperature: float = Field(default=0.0, alias="OPENAI_TEMPERATURE")

    # Batching
    batch_size: int = Field(default=50, alias="BATCH_SIZE")
    max_batch_size: int = Field(default=50, alias="MAX_BATCH_SIZE")
    max_token_cap: int = Field(default=800, alias="MAX_TOKEN_CAP")
    tokens_per_item: int = Field(default=40, alias="TOKENS_PER_ITEM")
    batch_pacing_seconds: float = Field(default=1.0, alias="BATCH_PACING_SECONDS")
    batch_timeout_seconds: float = Field(default=120.0, alias="BATCH_TIMEOUT_SECONDS")

    # Routing thresholds
    reference_acceptance_threshold: float = Field(default=0.8, alias="REFERENCE_ACCEPTANCE_THRESHOLD")
    cache_admission_threshold: float = Field(default=0.3, alias="CACHE_ADMISSION_THRESHOLD")
    fuzzy_match_threshold: float = Field(default=0.85, alias="FUZZY_MATCH_THRESHOLD")

    # Cache signature buckets
    amount_bucket_breakpoint: float = Field(default=100.0, alias="AMOUNT_BUCKET_BREAKPOINT")
    small_amount_bucket_width: float = Field(default=1.0, alias="SMALL_AMOUNT_BUCKET_WIDTH")
    large_amount_bucket_width: float = Field(default=10.0, alias="LARGE_AMOUNT_BUCKET_WIDTH")

    # Cost accounting
    estimated_ai_cost_per_transaction: float = Field(
        default=0.045, alias="ESTIMATED_AI_COST_PER_TRANSACTION"
    )
    default_country_code: str = Field(default="AU", alias="DEFAULT_COUNTRY_CODE")

    # Storage
    cache_database_path: Optional[str] = Field(default="classification_cache.db", alias="CACHE_DATABASE_PATH")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level is one of the standard levels."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v_upper

    @field_validator("port")
    @classmethod
    def validate_port(cls, v):
        """Validate port is in valid range."""
        if not (1 <= v <= 65535):
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator("batch_size", "max_batch_size")
    @classmethod
    def validate_batch_size(cls, v):
        """Batches hold between 1 and 50 transactions."""
        if v < 1:
            raise ValueError("Batch size must be at least 1")
        if v > 50:
            raise ValueError("Batch size should not exceed 50")
        return v

    @field_validator(
        "reference_acceptance_threshold",
        "cache_admission_threshold",
        "fuzzy_match_threshold",
    )
    @classmethod
    def validate_threshold(cls, v):
        """Thresholds are confidence values."""
        if not (0.0 <= v <= 1.0):
            raise ValueError("Threshold must be between 0.0 and 1.0")
        return v

    @field_validator("small_amount_bucket_width", "large_amount_bucket_width")
    @classmethod
    def validate_bucket_width(cls, v):
        if v <= 0:
            raise ValueError("Bucket width must be positive")
        return v

    @field_validator("batch_pacing_seconds")
    @classmethod
    def validate_pacing(cls, v):
        if v < 0:
            raise ValueError("Pacing delay cannot be negative")
        return v

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        populate_by_name = True
        extra = "ignore"


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get application settings singleton.

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings singleton (useful for testing)."""
    global _settings
    _settings = None
