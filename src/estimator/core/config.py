"""
Engine settings.

Values come from `ESTIMATOR_*` environment variables or a local `.env` file.
The expansion limits bound function expansion so that validation and
evaluation always terminate.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="ESTIMATOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Runtime
    # ==========================================================================
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level")
    json_logs: bool = Field(default=False, description="Emit JSON log lines")

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Accept lowercase level names."""
        if isinstance(v, str):
            v = v.strip().upper()
            if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
                raise ValueError(f"Unsupported log level: {v}")
        return v

    # ==========================================================================
    # Formula Engine Limits
    # ==========================================================================
    max_function_expansion_depth: int = Field(
        default=16,
        description="Maximum nesting depth when expanding user-defined functions",
    )
    max_expansion_nodes: int = Field(
        default=10_000,
        description="Maximum number of tree nodes produced by function expansion",
    )

    @field_validator("max_function_expansion_depth", "max_expansion_nodes")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Limits must be positive."""
        if v <= 0:
            raise ValueError("Expansion limits must be positive integers")
        return v

    # ==========================================================================
    # Computed Outputs & Preview
    # ==========================================================================
    computed_output_precision: int = Field(
        default=2,
        description="Decimal places computed outputs are rounded to",
    )
    preview_enabled: bool = Field(
        default=True,
        description="Compute a preview value during formula validation",
    )

    @field_validator("computed_output_precision")
    @classmethod
    def validate_precision(cls, v: int) -> int:
        """Precision must be within a sane range."""
        if v < 0 or v > 12:
            raise ValueError("computed_output_precision must be between 0 and 12")
        return v


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings, loaded on first use."""
    return Settings()


settings = get_settings()
