"""Shared test fixtures and configuration."""

import pytest
from typing import Generator
from unittest.mock import AsyncMock
import os

# Set TESTING flag to prevent loading .env file
os.environ['TESTING'] = '1'

# Set up test environment BEFORE any imports
os.environ['BIGDATACLOUD_API_KEY'] = 'test_bigdatacloud_key_1234'
os.environ['DEBUG'] = 'true'

from geolog.config import Settings


@pytest.fixture(autouse=True)
def setup_test_env() -> Generator[None, None, None]:
    """Set up test environment variables before each test."""
    original_env = os.environ.copy()

    os.environ['TESTING'] = '1'
    os.environ['BIGDATACLOUD_API_KEY'] = 'test_bigdatacloud_key_1234'

    yield

    # Restore original environment
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def clean_env() -> Generator[None, None, None]:
    """Provide a clean environment for tests that need to test missing variables."""
    original_env = os.environ.copy()

    os.environ.clear()
    os.environ['TESTING'] = '1'

    yield

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def test_settings() -> Settings:
    """Settings with a test API key and webhook."""
    return Settings(
        bigdatacloud_api_key="test_bigdatacloud_key_1234",
        discord_webhook_url="https://discord.com/api/webhooks/1/test",
    )


@pytest.fixture
def mock_redis():
    """Create mock Redis client."""
    redis_mock = AsyncMock()
    redis_mock.get = AsyncMock(return_value=None)
    redis_mock.setex = AsyncMock()
    return redis_mock


@pytest.fixture
def ip_payload() -> dict:
    """Geolocation payload shaped like an ip-geolocation-full response."""
    return {
        "ip": "203.0.113.7",
        "localityLanguageRequested": "en",
        "country": {
            "isoAlpha2": "US",
            "name": "United States of America",
            "callingCode": "1",
            "isEU": False,
            "currency": {"code": "USD", "name": "US Dollar"},
        },
        "location": {
            "principalSubdivision": "California",
            "city": "San Jose",
            "localityName": "San Jose",
            "postcode": "95113",
            "latitude": 37.0333,
            "longitude": -121.9667,
            "continent": "North America",
            "timeZone": {
                "ianaTimeId": "America/Los_Angeles",
                "localTime": "2026-01-01T04:00:00-08:00",
                "utcOffset": "-08:00",
                "isDaylightSavingTime": False,
            },
        },
        "network": {
            "registry": "ARIN",
            "registeredCountryName": "United States of America",
            "organisation": "Example Broadband",
            "bgpPrefix": "203.0.113.0/24",
            "carriers": [
                {"asn": "AS64500", "asnNumeric": 64500, "organisation": "Example Broadband"}
            ],
        },
        "confidence": "moderate",
        "confidenceArea": [
            [-122.0, 37.0],
            [-122.0, 37.1],
            [-121.9, 37.0],
        ],
        "securityThreat": "unknown",
        "hazardReport": {
            "isKnownAsTorServer": False,
            "isKnownAsVpn": False,
            "isKnownAsProxy": False,
            "isBogon": False,
            "hostingLikelihood": 0,
            "isHostingAsn": False,
        },
    }


@pytest.fixture
def asn_payload() -> dict:
    """Payload shaped like an asn-info-full response."""
    return {
        "asn": "AS64500",
        "asnNumeric": 64500,
        "organisation": "Example Broadband Inc.",
        "registry": "ARIN",
        "registeredCountryName": "United States of America",
        "totalIpv4Addresses": 65536,
        "rankText": "#1,234",
    }


@pytest.fixture
def threat_payload() -> dict:
    """Payload shaped like a threat-intelligence response."""
    return {
        "isKnownAttacker": False,
        "isKnownAbuser": False,
        "isTor": False,
        "isVpn": False,
        "isProxy": False,
        "threatScore": 5,
        "confidence": 80,
    }

