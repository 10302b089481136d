"""Visitor report assembly from geolocation, ASN and threat payloads."""
import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from fastapi import HTTPException

from geolog.config import Settings
from geolog.schemas.visitor import (
    LocationInfo,
    NetworkInfo,
    ThreatInfo,
    VisitorReport,
)
from geolog.services.client_info import is_public_ip, parse_user_agent
from geolog.services.confidence_radius import InvalidPolygonError, estimate_radius_km
from geolog.services.geolocation_service import GeolocationService

logger = logging.getLogger(__name__)

# Places the provider has been seen to put the ASN, most specific last
ASN_PATHS = (
    "autonomousSystemNumber",
    "asn",
    "asnNumeric",
    "network.autonomousSystemNumber",
    "network.asn",
    "network.asnNumeric",
    "network.carriers[0].asn",
    "network.carriers[0].asnNumeric",
    "network.viaCarriers[0].asn",
    "network.viaCarriers[0].asnNumeric",
)

_PATH_SPLIT = re.compile(r"[.\[\]]+")


def get_path(data: Any, path: str) -> Any:
    """
    Follow a dotted path with list indexes (``network.carriers[0].asn``).

    Returns None as soon as a step is missing.
    """
    value = data
    for part in filter(None, _PATH_SPLIT.split(path)):
        if isinstance(value, dict):
            value = value.get(part)
        elif isinstance(value, list) and part.isdigit():
            index = int(part)
            value = value[index] if index < len(value) else None
        else:
            return None
        if value is None:
            return None
    return value


def format_asn(value: Any) -> Optional[str]:
    """Normalise 7922, "7922" or "as7922" to "AS7922"."""
    if value is None or isinstance(value, bool):
        return None
    number = str(value).strip().upper().removeprefix("AS")
    if not number.isdecimal():
        return None
    return f"AS{int(number)}"


def find_asn(ip_data: Dict[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    """
    Locate the ASN in a geolocation payload.

    Returns:
        (formatted ASN, path it was found at), or (None, None)
    """
    for path in ASN_PATHS:
        asn = format_asn(get_path(ip_data, path))
        if asn:
            return asn, path
    return None, None


def _first(*values: Any, default: str = "Unknown") -> str:
    for value in values:
        if value not in (None, "") and not isinstance(value, (dict, list)):
            return str(value)
    return default


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def _float_or_none(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def _bool_or_none(value: Any) -> Optional[bool]:
    return value if isinstance(value, bool) else None


def _str_or_none(value: Any) -> Optional[str]:
    return None if value in (None, "") else str(value)


def _bounded_int(value: Any, low: int = 0, high: int = 100) -> int:
    number = _float_or_none(value)
    if number is None:
        return low
    return int(max(low, min(high, number)))


def extract_location(ip_data: Dict[str, Any]) -> LocationInfo:
    """Location fields with fallbacks for the full and basic payload shapes."""
    location = _section(ip_data, "location")
    country = _section(ip_data, "country")
    tz = _section(location, "timeZone")
    currency = _section(country, "currency")

    latitude = _float_or_none(location.get("latitude"))
    longitude = _float_or_none(location.get("longitude"))
    if latitude is not None and not -90 <= latitude <= 90:
        latitude = None
    if longitude is not None and not -180 <= longitude <= 180:
        longitude = None

    return LocationInfo(
        latitude=latitude,
        longitude=longitude,
        continent=_first(location.get("continent"), get_path(ip_data, "continent.name"), default="Unknown"),
        country=_first(country.get("name"), ip_data.get("countryName"), default="Unknown"),
        country_code=_first(country.get("isoAlpha2"), ip_data.get("countryCode"), default="Unknown"),
        region=_first(location.get("principalSubdivision"), ip_data.get("principalSubdivision"), default="Unknown"),
        city=_first(location.get("city"), location.get("localityName"), ip_data.get("city"), default="Unknown"),
        postcode=_str_or_none(location.get("postcode")),
        timezone=_first(tz.get("ianaTimeId"), default="Unknown"),
        local_time=_str_or_none(tz.get("localTime")),
        utc_offset=_str_or_none(tz.get("utcOffset")),
        is_daylight_saving=_bool_or_none(tz.get("isDaylightSavingTime")),
        currency_code=_str_or_none(currency.get("code")),
        currency_name=_str_or_none(currency.get("name")),
        calling_code=_str_or_none(country.get("callingCode")),
        is_eu=_bool_or_none(country.get("isEU")),
        confidence=_str_or_none(ip_data.get("confidence")),
    )


def extract_network(
    ip_data: Dict[str, Any],
    asn_data: Dict[str, Any],
    asn: Optional[str]
) -> NetworkInfo:
    """Network fields, preferring the dedicated ASN lookup when present."""
    network = _section(ip_data, "network")

    return NetworkInfo(
        asn=asn,
        isp=_first(
            asn_data.get("organisation"),
            network.get("organisation"),
            get_path(network, "carriers[0].organisation"),
            get_path(network, "carriers[0].name"),
            default="Unknown",
        ),
        organisation=_str_or_none(network.get("organisation")),
        registry=_first(asn_data.get("registry"), network.get("registry"), default="Unknown"),
        registered_country=_first(
            asn_data.get("registeredCountryName"),
            network.get("registeredCountryName"),
            default="Unknown",
        ),
        connection_type=_first(network.get("connectionType"), asn_data.get("connectionType"), default="Unknown"),
        bgp_prefix=_str_or_none(network.get("bgpPrefix")),
    )


def extract_threat(
    ip_data: Dict[str, Any],
    threat_data: Dict[str, Any],
    hosting_likelihood_threshold: int = 7
) -> ThreatInfo:
    """Merge the geolocation hazard report with the threat intelligence payload."""
    hazard = _section(ip_data, "hazardReport")
    likelihood = _float_or_none(hazard.get("hostingLikelihood"))

    return ThreatInfo(
        available=bool(hazard or threat_data),
        security_threat=_first(ip_data.get("securityThreat"), default="unknown"),
        is_known_attacker=bool(threat_data.get("isKnownAttacker")),
        is_known_abuser=bool(threat_data.get("isKnownAbuser")),
        is_tor=bool(hazard.get("isKnownAsTorServer") or threat_data.get("isTor")),
        is_vpn=bool(hazard.get("isKnownAsVpn") or threat_data.get("isVpn")),
        is_proxy=bool(hazard.get("isKnownAsProxy") or threat_data.get("isProxy")),
        is_relay=bool(hazard.get("iCloudPrivateRelay") or threat_data.get("isRelay")),
        is_bogon=bool(hazard.get("isBogon") or threat_data.get("isBogon")),
        is_hosting=bool(
            hazard.get("isHostingAsn")
            or (likelihood is not None and likelihood >= hosting_likelihood_threshold)
        ),
        is_spamhaus_listed=bool(
            hazard.get("isSpamhausDrop")
            or hazard.get("isSpamhausEdrop")
            or hazard.get("isSpamhausAsnDrop")
        ),
        is_blacklisted=bool(
            hazard.get("isBlacklistedUceprotect") or hazard.get("isBlacklistedBlocklistDe")
        ),
        hosting_likelihood=None if likelihood is None else int(likelihood),
        threat_score=_bounded_int(threat_data.get("threatScore")),
        confidence=_bounded_int(threat_data.get("confidence")),
    )


def compute_accuracy_radius(
    ip_data: Dict[str, Any],
    threat: ThreatInfo,
    settings: Settings
) -> Tuple[Optional[float], bool]:
    """
    Accuracy radius from the confidence area.

    Returns:
        (radius in km or None, whether it was suppressed for a hosting network)
    """
    polygon = ip_data.get("confidenceArea")
    if polygon is None:
        logger.debug("No confidence area in geolocation payload")
        return None, False

    if settings.suppress_radius_for_hosting and threat.is_hosting:
        logger.info("Accuracy radius suppressed for hosting-provider network")
        return None, True

    try:
        radius = estimate_radius_km(
            polygon,
            axis_order=settings.confidence_area_axis_order,
            strict=settings.confidence_area_strict,
        )
    except InvalidPolygonError as e:
        logger.warning(f"Could not estimate accuracy radius: {e}")
        return None, False

    return radius, False


def build_visitor_report(
    ip: str,
    user_agent: str,
    settings: Settings,
    ip_data: Optional[Dict[str, Any]] = None,
    asn_data: Optional[Dict[str, Any]] = None,
    threat_data: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, Optional[str]]] = None,
    lookup_errors: Optional[List[str]] = None,
    timestamp: Optional[datetime] = None
) -> VisitorReport:
    """Assemble a report from whatever upstream data is available."""
    ip_data = ip_data or {}
    asn_data = asn_data or {}
    threat_data = threat_data or {}

    asn, _ = find_asn(ip_data)
    location = extract_location(ip_data)
    threat = extract_threat(ip_data, threat_data, settings.hosting_likelihood_threshold)

    radius, suppressed = compute_accuracy_radius(ip_data, threat, settings)
    location.accuracy_radius_km = radius
    location.accuracy_radius_suppressed = suppressed

    return VisitorReport(
        ip=ip,
        user_agent=user_agent,
        timestamp=timestamp or datetime.now(timezone.utc),
        location=location,
        network=extract_network(ip_data, asn_data, asn),
        threat=threat,
        device=parse_user_agent(user_agent),
        headers=headers or {},
        lookup_errors=lookup_errors or [],
    )


async def collect_visitor_report(
    ip: str,
    user_agent: str,
    geolocation_service: GeolocationService,
    settings: Settings,
    headers: Optional[Dict[str, Optional[str]]] = None
) -> VisitorReport:
    """
    Run the upstream lookups for an IP and assemble the report.

    Lookup failures are logged and recorded in ``lookup_errors``; the
    report is built from the data that did arrive.
    """
    ip_data: Dict[str, Any] = {}
    asn_data: Dict[str, Any] = {}
    threat_data: Dict[str, Any] = {}
    errors: List[str] = []

    if not is_public_ip(ip):
        logger.info(f"Skipping lookups for non-public IP: {ip}")
        errors.append("non_public_ip")
    else:
        try:
            ip_data = await geolocation_service.lookup_ip(ip)
        except HTTPException as e:
            logger.warning(f"Geolocation lookup failed for {ip}: {e.detail}")
            errors.append(f"geolocation: {e.detail}")

        asn, path = find_asn(ip_data)
        if asn:
            logger.info(f"Found ASN {asn} at {path}")
            try:
                asn_data = await geolocation_service.asn_info(asn)
            except HTTPException as e:
                logger.warning(f"ASN lookup failed for {asn}: {e.detail}")
                errors.append(f"asn: {e.detail}")

        try:
            threat_data = await geolocation_service.threat_intelligence(ip)
        except HTTPException as e:
            logger.warning(f"Threat intelligence lookup failed for {ip}: {e.detail}")
            errors.append(f"threat: {e.detail}")

    return build_visitor_report(
        ip,
        user_agent,
        settings,
        ip_data=ip_data,
        asn_data=asn_data,
        threat_data=threat_data,
        headers=headers,
        lookup_errors=errors,
    )
