"""IP geolocation service with BigDataCloud integration, caching, and rate limiting."""

import json
import logging
from typing import Any, Dict, Optional, Union

import httpx
from aiolimiter import AsyncLimiter
from fastapi import HTTPException
from redis.asyncio import Redis

from geolog.config import Settings

logger = logging.getLogger(__name__)


class GeolocationService:
    """
    Service for IP lookups using the BigDataCloud API.

    Features:
    - Full IP geolocation with fallback to the basic endpoint
    - ASN details and threat intelligence lookups
    - Rate limiting (5 requests per second by default)
    - Redis caching with 6-hour TTL

    Responses are returned as plain dicts: the provider schema is not
    under our control, so field extraction happens in the report builder.
    """

    FULL_ENDPOINT = "ip-geolocation-full"
    BASIC_ENDPOINT = "ip-geolocation"
    ASN_ENDPOINT = "asn-info-full"
    THREAT_ENDPOINT = "threat-intelligence"

    def __init__(
        self,
        settings: Settings,
        redis_client: Optional[Redis] = None,
        rate_limiter: Optional[AsyncLimiter] = None
    ):
        """
        Initialize geolocation service.

        Args:
            settings: Application settings
            redis_client: Optional Redis client for caching
            rate_limiter: Limiter shared between service instances; a
                private one is created when omitted
        """
        self.settings = settings
        self.redis_client = redis_client
        self.base_url = settings.bigdatacloud_url
        self.api_key = settings.bigdatacloud_api_key
        self.timeout = settings.geolocation_timeout

        self.rate_limiter = rate_limiter or AsyncLimiter(
            max_rate=settings.geolocation_rate_limit,
            time_period=1.0
        )

        logger.info(
            f"GeolocationService initialized with rate limit: "
            f"{settings.geolocation_rate_limit} req/s"
        )

    async def lookup_ip(self, ip: str) -> Dict[str, Any]:
        """
        Geolocate an IP address.

        Tries the full endpoint first and falls back to the basic one when
        the full endpoint answers with an error status.

        Args:
            ip: IPv4 or IPv6 address

        Returns:
            Raw geolocation payload

        Raises:
            HTTPException: If the key is missing or the service fails
        """
        cache_key = f"geolog:ip:{ip}"
        cached = await self._cache_get(cache_key)
        if cached is not None:
            logger.info(f"Cache hit for IP: {ip}")
            return cached

        ttl = self.settings.geolocation_cache_ttl
        try:
            data = await self._get_json(self.FULL_ENDPOINT, {"ip": ip})
        except HTTPException as e:
            if e.status_code != 502:
                raise
            logger.warning(f"Full geolocation failed for {ip}, trying basic endpoint")
            data = await self._get_json(self.BASIC_ENDPOINT, {"ip": ip})
            # Basic data lacks the hazard report and confidence area
            ttl = self.settings.geolocation_fallback_cache_ttl

        await self._cache_set(cache_key, data, ttl)
        return data

    async def asn_info(self, asn: Union[str, int]) -> Dict[str, Any]:
        """
        Fetch details for an autonomous system.

        Args:
            asn: ASN as a number or "AS<number>" string

        Returns:
            Raw ASN payload (organisation, registry, ranks, ...)
        """
        number = str(asn).strip().upper().removeprefix("AS")
        if not number.isdecimal():
            raise HTTPException(
                status_code=400,
                detail=f"Invalid ASN: {asn}"
            )

        cache_key = f"geolog:asn:{number}"
        cached = await self._cache_get(cache_key)
        if cached is not None:
            logger.info(f"Cache hit for ASN: AS{number}")
            return cached

        data = await self._get_json(self.ASN_ENDPOINT, {"asn": f"AS{number}"})
        await self._cache_set(cache_key, data)
        return data

    async def threat_intelligence(self, ip: str) -> Dict[str, Any]:
        """Fetch threat intelligence (attacker/abuser flags, threat score) for an IP."""
        cache_key = f"geolog:threat:{ip}"
        cached = await self._cache_get(cache_key)
        if cached is not None:
            logger.info(f"Cache hit for threat data: {ip}")
            return cached

        data = await self._get_json(self.THREAT_ENDPOINT, {"ip": ip})
        await self._cache_set(cache_key, data)
        return data

    async def _get_json(self, endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            logger.error("BIGDATACLOUD_API_KEY is not configured")
            raise HTTPException(
                status_code=503,
                detail="Geolocation service not configured"
            )

        query = {
            **params,
            "localityLanguage": self.settings.locality_language,
            "key": self.api_key,
        }

        # Rate limit the request
        async with self.rate_limiter:
            logger.info(f"Requesting {endpoint} with {params}")

            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(
                        f"{self.base_url}/{endpoint}",
                        params=query
                    )
                    response.raise_for_status()
                    data = response.json()
            except httpx.HTTPStatusError as e:
                logger.error(f"BigDataCloud HTTP error on {endpoint}: {e.response.status_code}")
                if e.response.status_code == 429:
                    raise HTTPException(
                        status_code=429,
                        detail="Geolocation rate limit exceeded. Please try again later."
                    )
                raise HTTPException(
                    status_code=502,
                    detail="Geolocation service error"
                )
            except httpx.TimeoutException:
                logger.error(f"BigDataCloud request timeout on {endpoint}")
                raise HTTPException(
                    status_code=504,
                    detail="Geolocation service timeout"
                )
            except httpx.RequestError as e:
                logger.error(f"BigDataCloud request error on {endpoint}: {e}")
                raise HTTPException(
                    status_code=503,
                    detail="Geolocation service unavailable"
                )
            except ValueError as e:
                logger.error(f"BigDataCloud returned invalid JSON on {endpoint}: {e}")
                raise HTTPException(
                    status_code=502,
                    detail="Geolocation service returned an invalid response"
                )

        if not isinstance(data, dict):
            raise HTTPException(
                status_code=502,
                detail="Geolocation service returned an invalid response"
            )
        return data

    async def _cache_get(self, key: str) -> Optional[Dict[str, Any]]:
        if not self.redis_client:
            return None
        try:
            cached = await self.redis_client.get(key)
            if cached:
                return json.loads(cached)
        except Exception as e:
            logger.warning(f"Cache read error: {e}")
        return None

    async def _cache_set(
        self,
        key: str,
        data: Dict[str, Any],
        ttl: Optional[int] = None
    ) -> None:
        if not self.redis_client:
            return
        try:
            await self.redis_client.setex(
                key,
                ttl or self.settings.geolocation_cache_ttl,
                json.dumps(data)
            )
            logger.info(f"Cached result for key: {key}")
        except Exception as e:
            logger.warning(f"Cache write error: {e}")
