"""
Accuracy radius estimation from provider confidence polygons.

A confidence area is a list of vertices outlining the region the provider
believes the IP is located in. The radius is the largest great-circle
distance from the polygon centroid to any vertex, which gives a single
conservative number for display.

Vertices arrive either as ordered pairs whose axis order is not reliably
known, or as mappings with latitude/longitude under one of several keys.
"""

import logging
import math
from collections.abc import Mapping, Sequence
from typing import Any, List, Literal, Tuple

from geolog.schemas.geo import ConfidenceAreaBounds, GeoPoint, RadiusEstimate

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE = 111.32

LATITUDE_KEYS = ("latitude", "lat")
LONGITUDE_KEYS = ("longitude", "lon", "lng")

AxisOrder = Literal["auto", "lat_lon", "lon_lat"]
AXIS_ORDERS = ("auto", "lat_lon", "lon_lat")


class InvalidPolygonError(ValueError):
    """Raised when a confidence polygon cannot be turned into a radius."""


def _is_point_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def _to_float(value: Any) -> float:
    """Coerce a coordinate component to a finite float."""
    if value is None or isinstance(value, bool):
        raise InvalidPolygonError(f"Coordinate is not a number: {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        raise InvalidPolygonError(f"Coordinate is not a number: {value!r}") from None
    if not math.isfinite(number):
        raise InvalidPolygonError(f"Coordinate is not finite: {value!r}")
    return number


def _lookup(raw: Mapping, keys: Tuple[str, ...]) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    raise InvalidPolygonError(f"Point has none of the keys {', '.join(keys)}: {raw!r}")


def _wrap_longitude(longitude: float) -> float:
    if -180.0 <= longitude <= 180.0:
        return longitude
    return ((longitude + 180.0) % 360.0) - 180.0


def resolve_point(raw: Any, axis_order: AxisOrder = "auto") -> GeoPoint:
    """
    Resolve one raw vertex to a GeoPoint.

    With ``axis_order="auto"`` a pair is read as [lat, lon] when the first
    value fits in ±90 and the second in ±180, otherwise as [lon, lat].
    Pairs where both values are within ±90 cannot be told apart and are
    always read as [lat, lon].

    Raises:
        InvalidPolygonError: If the vertex has an unrecognised shape, a
            non-numeric component, or a latitude beyond ±90.
    """
    if axis_order not in AXIS_ORDERS:
        raise ValueError(f"Unknown axis order: {axis_order!r}")

    if isinstance(raw, Mapping):
        latitude = _to_float(_lookup(raw, LATITUDE_KEYS))
        longitude = _to_float(_lookup(raw, LONGITUDE_KEYS))
    elif _is_point_sequence(raw):
        if len(raw) < 2:
            raise InvalidPolygonError(f"Coordinate pair needs two values: {raw!r}")
        first = _to_float(raw[0])
        second = _to_float(raw[1])
        if axis_order == "lat_lon":
            latitude, longitude = first, second
        elif axis_order == "lon_lat":
            latitude, longitude = second, first
        elif abs(first) <= 90 and abs(second) <= 180:
            latitude, longitude = first, second
        else:
            latitude, longitude = second, first
    else:
        raise InvalidPolygonError(f"Unsupported point type: {type(raw).__name__}")

    if abs(latitude) > 90:
        raise InvalidPolygonError(f"Latitude out of range: {latitude}")

    return GeoPoint(latitude=latitude, longitude=_wrap_longitude(longitude))


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance between two points in kilometers."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    dlat = lat2 - lat1
    dlon = math.radians(b.longitude - a.longitude)

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    # Rounding can push h a hair above 1 for antipodal points
    h = min(1.0, h)
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return EARTH_RADIUS_KM * c


def centroid(points: Sequence) -> GeoPoint:
    """Arithmetic mean of latitudes and longitudes."""
    if not points:
        raise InvalidPolygonError("Cannot compute the centroid of no points")
    count = len(points)
    latitude = sum(p.latitude for p in points) / count
    longitude = sum(p.longitude for p in points) / count
    # Summation error can push a mean of boundary values past the limit
    return GeoPoint(
        latitude=min(90.0, max(-90.0, latitude)),
        longitude=min(180.0, max(-180.0, longitude)),
    )


def _resolve_polygon(
    polygon: Any,
    axis_order: AxisOrder,
    strict: bool
) -> Tuple[List[GeoPoint], int]:
    if not _is_point_sequence(polygon):
        raise InvalidPolygonError(
            f"Polygon must be a sequence of points, got {type(polygon).__name__}"
        )
    if len(polygon) == 0:
        raise InvalidPolygonError("Polygon is empty")

    points: List[GeoPoint] = []
    skipped = 0
    for index, raw in enumerate(polygon):
        try:
            points.append(resolve_point(raw, axis_order))
        except InvalidPolygonError as e:
            if strict:
                raise InvalidPolygonError(f"Invalid point at index {index}: {e}") from e
            skipped += 1
            logger.debug(f"Skipping invalid confidence area point {index}: {e}")

    if not points:
        raise InvalidPolygonError(
            f"Polygon has no valid points ({skipped} skipped)"
        )

    return points, skipped


def estimate_radius(
    polygon: Any,
    *,
    axis_order: AxisOrder = "auto",
    strict: bool = True
) -> RadiusEstimate:
    """
    Estimate the accuracy radius of a confidence polygon.

    Args:
        polygon: Sequence of vertices, each a coordinate pair or a mapping
            with latitude/lat and longitude/lon/lng keys
        axis_order: "auto" to detect pair order from value ranges, or the
            provider's known order ("lat_lon" / "lon_lat")
        strict: Reject the whole polygon on the first invalid vertex. When
            False, invalid vertices are dropped and counted.

    Returns:
        RadiusEstimate with the radius rounded to 2 decimals

    Raises:
        InvalidPolygonError: If the polygon is empty, not a sequence, has an
            invalid vertex in strict mode, or has no valid vertex at all
    """
    points, skipped = _resolve_polygon(polygon, axis_order, strict)
    center = centroid(points)
    radius = max(haversine_km(center, point) for point in points)

    if skipped:
        logger.info(
            f"Confidence radius computed from {len(points)} points, "
            f"{skipped} invalid points skipped"
        )

    return RadiusEstimate(
        radius_km=round(radius, 2),
        centroid=center,
        points_used=len(points),
        points_skipped=skipped,
    )


def estimate_radius_km(
    polygon: Any,
    *,
    axis_order: AxisOrder = "auto",
    strict: bool = True
) -> float:
    """Accuracy radius in kilometers, rounded to 2 decimals. See estimate_radius."""
    return estimate_radius(polygon, axis_order=axis_order, strict=strict).radius_km


def summarize_bounds(polygon: Any, *, axis_order: AxisOrder = "auto") -> ConfidenceAreaBounds:
    """
    Bounding box of the valid vertices of a polygon.

    Width is measured along the mean latitude using a flat 111.32 km per
    degree approximation, which is fine for city-sized areas.
    """
    points, _ = _resolve_polygon(polygon, axis_order, strict=False)

    lats = [p.latitude for p in points]
    lons = [p.longitude for p in points]
    min_lat, max_lat = min(lats), max(lats)
    min_lon, max_lon = min(lons), max(lons)

    mean_lat = (min_lat + max_lat) / 2
    height_km = (max_lat - min_lat) * KM_PER_DEGREE
    width_km = (max_lon - min_lon) * KM_PER_DEGREE * math.cos(math.radians(mean_lat))
    width_km = max(0.0, width_km)

    return ConfidenceAreaBounds(
        min_latitude=min_lat,
        max_latitude=max_lat,
        min_longitude=min_lon,
        max_longitude=max_lon,
        width_km=round(width_km, 2),
        height_km=round(height_km, 2),
        area_km2=round(width_km * height_km, 2),
    )
