"""Pydantic schemas for request/response validation."""
from geolog.schemas.geo import ConfidenceAreaBounds, GeoPoint, RadiusEstimate
from geolog.schemas.visitor import (
    DeviceInfo,
    LocationInfo,
    NetworkInfo,
    ThreatInfo,
    VisitorLogResponse,
    VisitorReport,
)

__all__ = [
    # Geo schemas
    "GeoPoint",
    "RadiusEstimate",
    "ConfidenceAreaBounds",
    # Visitor schemas
    "DeviceInfo",
    "LocationInfo",
    "NetworkInfo",
    "ThreatInfo",
    "VisitorReport",
    "VisitorLogResponse",
]
