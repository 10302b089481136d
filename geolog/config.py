"""Application configuration using Pydantic Settings."""

import os
from typing import List, Literal, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application Configuration
    app_name: str = Field(
        default="Visitor Geolog",
        description="Application name"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    allowed_origins: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins"
    )

    # Server Configuration
    host: str = Field(
        default="0.0.0.0",
        description="Server host"
    )
    port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Server port"
    )

    # Redis Configuration
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for caching"
    )

    # Geolocation Configuration
    bigdatacloud_api_key: str = Field(
        default="",
        description="BigDataCloud API key"
    )
    bigdatacloud_url: str = Field(
        default="https://api-bdc.net/data",
        description="BigDataCloud API base URL"
    )
    locality_language: str = Field(
        default="en",
        min_length=2,
        max_length=10,
        description="Language requested for locality names"
    )
    geolocation_timeout: float = Field(
        default=10.0,
        gt=0,
        le=60.0,
        description="Timeout for geolocation API requests in seconds"
    )
    geolocation_rate_limit: float = Field(
        default=5.0,
        ge=0.1,
        le=100.0,
        description="Geolocation rate limit (requests per second)"
    )
    geolocation_cache_ttl: int = Field(
        default=21600,
        ge=60,
        le=604800,
        description="Geolocation cache TTL in seconds (1 minute to 7 days)"
    )
    geolocation_fallback_cache_ttl: int = Field(
        default=600,
        ge=60,
        le=86400,
        description="Cache TTL in seconds for reduced data from the basic endpoint fallback"
    )

    # Confidence Area Configuration
    confidence_area_axis_order: Literal["auto", "lat_lon", "lon_lat"] = Field(
        default="auto",
        description="Coordinate order of confidence area pairs returned by the provider"
    )
    confidence_area_strict: bool = Field(
        default=True,
        description="Reject the whole confidence area when any point is invalid"
    )
    suppress_radius_for_hosting: bool = Field(
        default=True,
        description="Omit the accuracy radius for hosting-provider networks"
    )
    hosting_likelihood_threshold: int = Field(
        default=7,
        ge=0,
        le=10,
        description="Hosting likelihood (0-10) at or above which a network counts as hosting"
    )

    # Notification Configuration
    discord_webhook_url: Optional[str] = Field(
        default=None,
        description="Discord webhook URL for visitor notifications"
    )
    notification_timeout: float = Field(
        default=10.0,
        gt=0,
        le=60.0,
        description="Timeout for webhook requests in seconds"
    )

    # Visitor Log Rate Limit
    log_rate_limit_requests: int = Field(
        default=30,
        ge=1,
        le=10000,
        description="Maximum /api/log requests per client IP within the window"
    )
    log_rate_limit_window: int = Field(
        default=60,
        ge=1,
        le=86400,
        description="Rate limit window in seconds"
    )
    trust_forwarded_headers: bool = Field(
        default=True,
        description=(
            "Key the rate limit on proxy headers (X-Forwarded-For etc.). "
            "Disable when the app is not behind a proxy that overwrites them, "
            "otherwise clients can rotate the header to evade the limit"
        )
    )

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("TESTING") else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("bigdatacloud_url")
    @classmethod
    def validate_bigdatacloud_url(cls, v: str) -> str:
        """Validate that the API base URL is absolute and strip the trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(
                "BIGDATACLOUD_URL must start with http:// or https://"
            )
        return v.rstrip("/")

    @field_validator("discord_webhook_url")
    @classmethod
    def validate_discord_webhook_url(cls, v: Optional[str]) -> Optional[str]:
        """Treat an empty webhook URL as unset."""
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not v.startswith("https://"):
            raise ValueError("DISCORD_WEBHOOK_URL must use https://")
        return v

    def get_allowed_origins_list(self) -> List[str]:
        """Parse allowed origins from comma-separated string."""
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    @property
    def has_api_key(self) -> bool:
        """Whether a BigDataCloud API key is configured."""
        return bool(self.bigdatacloud_api_key)

    @property
    def masked_api_key(self) -> str:
        """API key with everything except the first and last 4 characters hidden."""
        key = self.bigdatacloud_api_key
        if len(key) <= 8:
            return "*" * len(key)
        return f"{key[:4]}...{key[-4:]}"
