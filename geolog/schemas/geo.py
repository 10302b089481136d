"""Pydantic schemas for geographic coordinates and confidence areas."""

from pydantic import BaseModel, ConfigDict, Field


class GeoPoint(BaseModel):
    """Geographic coordinates."""

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "latitude": 37.7749,
                "longitude": -122.4194
            }
        }
    )

    latitude: float = Field(..., ge=-90, le=90, description="Latitude in decimal degrees")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude in decimal degrees")


class RadiusEstimate(BaseModel):
    """Accuracy radius derived from a confidence polygon."""

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "radius_km": 8.34,
                "centroid": {"latitude": 37.0333, "longitude": -121.9667},
                "points_used": 3,
                "points_skipped": 0
            }
        }
    )

    radius_km: float = Field(..., ge=0, description="Maximum distance from centroid to a vertex in km")
    centroid: GeoPoint = Field(..., description="Arithmetic mean of the resolved vertices")
    points_used: int = Field(..., ge=1, description="Number of vertices the radius was computed from")
    points_skipped: int = Field(default=0, ge=0, description="Invalid vertices dropped in lenient mode")


class ConfidenceAreaBounds(BaseModel):
    """Bounding box summary of a confidence polygon."""

    min_latitude: float
    max_latitude: float
    min_longitude: float
    max_longitude: float
    width_km: float = Field(..., ge=0, description="East-west extent at the mean latitude")
    height_km: float = Field(..., ge=0, description="North-south extent")
    area_km2: float = Field(..., ge=0, description="Approximate bounding box area")
