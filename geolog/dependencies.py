"""FastAPI dependencies for settings, caching and upstream services."""
import logging
from typing import Optional

from aiolimiter import AsyncLimiter
from fastapi import Depends
from redis.asyncio import Redis

from geolog.config import Settings
from geolog.services.discord_notifier import DiscordNotifier
from geolog.services.geolocation_service import GeolocationService

logger = logging.getLogger(__name__)


# Initialize settings
settings = Settings()


# Redis client singleton
_redis_client: Optional[Redis] = None

# Shared so the upstream rate limit holds across requests
_geolocation_limiter = AsyncLimiter(
    max_rate=settings.geolocation_rate_limit,
    time_period=1.0
)


def get_settings() -> Settings:
    """Dependency returning the application settings."""
    return settings


async def get_redis() -> Optional[Redis]:
    """
    Dependency to get Redis client for caching.

    Returns None if Redis connection fails (graceful degradation).
    """
    global _redis_client

    if _redis_client is None:
        try:
            _redis_client = Redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True
            )
            # Test connection
            await _redis_client.ping()
        except Exception as e:
            # Service works without cache
            logger.warning(f"Redis connection failed: {e}. Caching disabled.")
            _redis_client = None

    return _redis_client


def get_geolocation_service(
    redis_client: Optional[Redis] = Depends(get_redis),
    app_settings: Settings = Depends(get_settings)
) -> GeolocationService:
    """
    Dependency to get geolocation service instance.

    Args:
        redis_client: Optional Redis client for caching
        app_settings: Application settings

    Returns:
        GeolocationService: Configured geolocation service
    """
    return GeolocationService(app_settings, redis_client, _geolocation_limiter)


def get_notifier(app_settings: Settings = Depends(get_settings)) -> DiscordNotifier:
    """Dependency to get the Discord notifier."""
    return DiscordNotifier(app_settings)
