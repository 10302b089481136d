"""Visitor report schemas for API responses and notifications."""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class DeviceInfo(BaseModel):
    """Browser, OS and device class sniffed from the user-agent."""
    browser: str = "Unknown"
    os: str = "Unknown"
    device: str = "Desktop"
    raw: str = ""


class LocationInfo(BaseModel):
    """Location details extracted from the geolocation response."""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    continent: str = "Unknown"
    country: str = "Unknown"
    country_code: str = "Unknown"
    region: str = "Unknown"
    city: str = "Unknown"
    postcode: Optional[str] = None
    timezone: str = "Unknown"
    local_time: Optional[str] = None
    utc_offset: Optional[str] = None
    is_daylight_saving: Optional[bool] = None
    currency_code: Optional[str] = None
    currency_name: Optional[str] = None
    calling_code: Optional[str] = None
    is_eu: Optional[bool] = None
    confidence: Optional[str] = Field(None, description="Provider confidence level (low/moderate/high)")
    accuracy_radius_km: Optional[float] = Field(
        None,
        ge=0,
        description="Radius of the provider confidence area; omitted when unavailable"
    )
    accuracy_radius_suppressed: bool = Field(
        default=False,
        description="Radius withheld because the network belongs to a hosting provider"
    )


class NetworkInfo(BaseModel):
    """Network/ASN details."""
    asn: Optional[str] = Field(None, description="ASN formatted as AS<number>")
    isp: str = "Unknown"
    organisation: Optional[str] = None
    registry: str = "Unknown"
    registered_country: str = "Unknown"
    connection_type: str = "Unknown"
    bgp_prefix: Optional[str] = None


class ThreatInfo(BaseModel):
    """Threat flags merged from the hazard report and threat intelligence."""
    available: bool = False
    security_threat: str = "unknown"
    is_known_attacker: bool = False
    is_known_abuser: bool = False
    is_tor: bool = False
    is_vpn: bool = False
    is_proxy: bool = False
    is_relay: bool = False
    is_bogon: bool = False
    is_hosting: bool = False
    is_spamhaus_listed: bool = False
    is_blacklisted: bool = False
    hosting_likelihood: Optional[int] = None
    threat_score: int = Field(default=0, ge=0, le=100)
    confidence: int = Field(default=0, ge=0, le=100)

    def active_threats(self) -> List[str]:
        """Human-readable names of the raised threat flags."""
        labels = [
            (self.is_known_attacker, "Known Attacker"),
            (self.is_known_abuser, "Known Abuser"),
            (self.is_proxy, "Proxy"),
            (self.is_tor, "Tor Node"),
            (self.is_vpn, "VPN"),
            (self.is_bogon, "Bogon IP"),
            (self.is_relay, "Relay"),
            (self.is_spamhaus_listed, "Spamhaus Listed"),
            (self.is_blacklisted, "Blacklisted"),
        ]
        return [label for flag, label in labels if flag]


class VisitorReport(BaseModel):
    """Everything collected about a single visitor."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "ip": "203.0.113.7",
                "user_agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/126.0",
                "timestamp": "2026-01-01T12:00:00Z",
                "location": {"city": "Sydney", "country": "Australia", "accuracy_radius_km": 12.4},
                "network": {"asn": "AS1221", "isp": "Telstra"},
                "threat": {"available": True, "threat_score": 0},
                "device": {"browser": "Chrome", "os": "Windows", "device": "Desktop"}
            }
        }
    )

    ip: str
    user_agent: str
    timestamp: datetime
    location: LocationInfo = Field(default_factory=LocationInfo)
    network: NetworkInfo = Field(default_factory=NetworkInfo)
    threat: ThreatInfo = Field(default_factory=ThreatInfo)
    device: DeviceInfo = Field(default_factory=DeviceInfo)
    headers: Dict[str, Optional[str]] = Field(default_factory=dict)
    lookup_errors: List[str] = Field(
        default_factory=list,
        description="Upstream lookups that failed; the report holds partial data"
    )


class VisitorLogResponse(BaseModel):
    """Response body for the visitor log endpoint."""
    success: bool = True
    message: str = "Visitor data collected successfully"
    notified: bool = Field(default=False, description="Whether the webhook notification was delivered")
    data: VisitorReport
