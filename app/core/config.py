"""
Service settings, read from the environment and an optional .env file.

Only DATABASE_URL is needed to start the API. COMPANIES_HOUSE_API_KEY is
checked when a registry client is built, so a missing key rejects network
builds with a clear message instead of failing at startup.
"""
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class MissingCompaniesHouseAPIKeyError(Exception):
    """Raised when a registry operation is requested without an API key."""
    pass


IDENTITY_MATCH_STRATEGIES = {"exact", "similarity"}


class Settings(BaseSettings):
    """Director network service settings (environment names are case-insensitive)."""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Database (REQUIRED for API startup)
    database_url: str = Field(
        ...,
        description="PostgreSQL connection URL"
    )

    # Companies House API (OPTIONAL for startup, REQUIRED for network builds)
    companies_house_api_key: Optional[str] = Field(
        default=None,
        description="Companies House API key - required only for registry operations"
    )

    companies_house_base_url: str = Field(
        default="https://api.company-information.service.gov.uk",
        description="Base URL of the Companies House public data API"
    )

    # Registry rate limit (shared by every registry consumer in the process)
    registry_rate_limit_requests: int = Field(
        default=600,
        ge=1,
        description="Requests allowed per rate limit window"
    )

    registry_rate_limit_window_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Length of the sliding rate limit window in seconds"
    )

    registry_rate_limit_timeout_seconds: float = Field(
        default=30.0,
        ge=0,
        description="Maximum seconds to wait for a free rate limit slot"
    )

    registry_max_retries: int = Field(
        default=1,
        ge=1,
        le=10,
        description="Attempts per registry request (1 = no retries)"
    )

    registry_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Registry request timeout in seconds"
    )

    company_cache_ttl_seconds: float = Field(
        default=300.0,
        ge=0,
        description="How long company profiles are cached in-process (0 disables)"
    )

    # Network builder
    network_call_delay_seconds: float = Field(
        default=0.5,
        ge=0,
        le=10.0,
        description="Fixed delay between consecutive registry calls in a network build"
    )

    identity_match_strategy: str = Field(
        default="exact",
        description="How officers without a registry id are matched: exact or similarity"
    )

    name_match_threshold: float = Field(
        default=0.9,
        ge=0.5,
        le=1.0,
        description="Minimum name similarity for the similarity identity strategy"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard levels."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v_upper

    @field_validator("identity_match_strategy")
    @classmethod
    def validate_identity_match_strategy(cls, v: str) -> str:
        v_lower = v.lower()
        if v_lower not in IDENTITY_MATCH_STRATEGIES:
            raise ValueError(
                f"identity_match_strategy must be one of {IDENTITY_MATCH_STRATEGIES}"
            )
        return v_lower

    def require_companies_house_api_key(self) -> str:
        """
        Get Companies House API key, raising clear error if missing.

        Call this at the START of any network build.

        Raises:
            MissingCompaniesHouseAPIKeyError: If the key is not configured

        Returns:
            str: The API key
        """
        if not self.companies_house_api_key:
            raise MissingCompaniesHouseAPIKeyError(
                "COMPANIES_HOUSE_API_KEY is required for registry operations. "
                "Please set it in your .env file or environment variables. "
                "Register for a key at: https://developer.company-information.service.gov.uk/"
            )
        return self.companies_house_api_key


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Process-wide settings, loaded on first use."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None
