"""Visitor logging API endpoints."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse

from geolog.config import Settings
from geolog.dependencies import get_geolocation_service, get_notifier, get_settings
from geolog.middleware.rate_limiter import limit_visitor_log
from geolog.schemas.visitor import VisitorLogResponse
from geolog.services.client_info import get_client_ip, get_reported_headers, is_public_ip
from geolog.services.confidence_radius import (
    InvalidPolygonError,
    estimate_radius,
    summarize_bounds,
)
from geolog.services.discord_notifier import DiscordNotifier, NotificationError
from geolog.services.geolocation_service import GeolocationService
from geolog.services.report_builder import ASN_PATHS, collect_visitor_report, find_asn, get_path

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

DEBUG_PAGE = """<!DOCTYPE html>
<html>
  <head>
    <title>IP Debug - Check Server Logs</title>
    <style>
      body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
             max-width: 800px; margin: 40px auto; padding: 20px; line-height: 1.6; color: #333; }}
      .container {{ background: #f5f5f5; border-radius: 10px; padding: 30px; text-align: center; }}
      .log-box {{ background: #2c3e50; color: #ecf0f1; padding: 20px; border-radius: 5px;
                 font-family: 'Monaco', 'Menlo', monospace; font-size: 14px; text-align: left; }}
    </style>
  </head>
  <body>
    <div class="container">
      <h1>🔍 IP Debug Endpoint</h1>
      <p><strong>This endpoint runs extensive debug logging.</strong></p>
      <p>Check the server logs for the complete output. No notification is sent.</p>
      <div class="log-box">
        <p>Timestamp: {timestamp}</p>
        <p>Endpoint: /api/debug-ip</p>
        <p>Method: {method}</p>
      </div>
    </div>
  </body>
</html>
"""

RULE = "=" * 80
SUBRULE = "-" * 80


@router.get(
    "/log",
    response_model=VisitorLogResponse,
    summary="Log visitor",
    description="""
    Collect geolocation, network, threat and device information for the
    calling client and forward it to the configured Discord webhook.

    Upstream lookup failures do not fail the request: the report contains
    whatever data was available and lists the failed lookups.
    """,
    dependencies=[Depends(limit_visitor_log)],
)
async def log_visitor(
    request: Request,
    geolocation_service: GeolocationService = Depends(get_geolocation_service),
    notifier: DiscordNotifier = Depends(get_notifier),
    settings: Settings = Depends(get_settings),
) -> VisitorLogResponse:
    """
    Build and dispatch a visitor report.

    Args:
        request: Incoming request
        geolocation_service: Geolocation service instance
        notifier: Discord notifier
        settings: Application settings

    Returns:
        VisitorLogResponse with the collected report
    """
    client_ip = get_client_ip(request)
    user_agent = request.headers.get("user-agent") or "Unknown"
    logger.info(f"Processing visitor log request from IP: {client_ip}")

    report = await collect_visitor_report(
        client_ip,
        user_agent,
        geolocation_service,
        settings,
        headers=get_reported_headers(request),
    )

    notified = False
    try:
        notified = await notifier.send(report)
    except NotificationError as e:
        logger.error(f"Discord webhook error: {e}")

    return VisitorLogResponse(
        message="Visitor data collected successfully",
        notified=notified,
        data=report,
    )


def _log_section(title: str) -> None:
    logger.info(SUBRULE)
    logger.info(title)
    logger.info(SUBRULE)


def _log_confidence_area(ip_data: Dict[str, Any], settings: Settings) -> None:
    _log_section("🎯 CONFIDENCE AREA ANALYSIS")
    polygon = ip_data.get("confidenceArea")
    if not isinstance(polygon, list) or not polygon:
        logger.info("- No confidence area data available")
        return

    logger.info(f"- Total points: {len(polygon)}")
    logger.info(f"- First point: {json.dumps(polygon[0])}")
    logger.info(f"- Last point: {json.dumps(polygon[-1])}")

    try:
        bounds = summarize_bounds(polygon, axis_order=settings.confidence_area_axis_order)
        estimate = estimate_radius(
            polygon,
            axis_order=settings.confidence_area_axis_order,
            strict=False,
        )
    except InvalidPolygonError as e:
        logger.warning(f"- Confidence area unusable: {e}")
        return

    logger.info(f"- Valid points: {estimate.points_used}/{len(polygon)}")
    logger.info(f"- Lat range: {bounds.min_latitude:.6f} to {bounds.max_latitude:.6f}")
    logger.info(f"- Lon range: {bounds.min_longitude:.6f} to {bounds.max_longitude:.6f}")
    logger.info(f"- Dimensions: {bounds.width_km} km x {bounds.height_km} km")
    logger.info(f"- Approx area: {bounds.area_km2} km²")
    logger.info(
        f"- Centroid: {estimate.centroid.latitude:.6f}, {estimate.centroid.longitude:.6f}"
    )
    logger.info(f"- Accuracy radius: {estimate.radius_km} km")


async def _run_debug_session(
    request: Request,
    geolocation_service: GeolocationService,
    settings: Settings
) -> None:
    client_ip = get_client_ip(request)
    user_agent = request.headers.get("user-agent") or "Unknown"

    logger.info(RULE)
    logger.info("🔍 DEBUG IP ENDPOINT - COMPLETE LOGS")
    logger.info(RULE)
    logger.info(f"Client IP: {client_ip} (public: {is_public_ip(client_ip)})")
    logger.info(f"User-Agent: {user_agent[:100]}{'...' if len(user_agent) > 100 else ''}")
    logger.info(f"Request Method: {request.method}")
    logger.info(f"Request Headers: {json.dumps(dict(request.headers), indent=2)}")

    _log_section("🔑 API KEY CHECK")
    logger.info(f"API Key available: {settings.has_api_key}")
    if not settings.has_api_key:
        logger.error("❌ MISSING BIGDATACLOUD_API_KEY environment variable")
        return
    logger.info(f"API Key: {settings.masked_api_key}")

    _log_section("🌍 GEOLOCATION API REQUEST")
    ip_data: Dict[str, Any] = {}
    try:
        ip_data = await geolocation_service.lookup_ip(client_ip)
    except HTTPException as e:
        logger.error(f"❌ Geolocation lookup failed: {e.status_code} {e.detail}")

    if ip_data:
        logger.info("📊 COMPLETE IP DATA STRUCTURE:")
        logger.info(json.dumps(ip_data, indent=2))
        logger.info(f"- Top-level keys: {', '.join(ip_data.keys())}")
        for section in ("network", "location", "country"):
            if isinstance(ip_data.get(section), dict):
                logger.info(f"- {section.capitalize()} keys: {', '.join(ip_data[section].keys())}")

    _log_section("🔗 ASN SEARCH IN RESPONSE")
    for path in ASN_PATHS:
        value = get_path(ip_data, path)
        if value is not None:
            logger.info(f"✓ Found ASN at \"{path}\": {value}")
    asn, path = find_asn(ip_data)
    if asn is None:
        logger.info("✗ No ASN number found in any expected field")
    else:
        logger.info(f"Using {asn} from {path}")
        _log_section("🏢 ASN API REQUEST")
        try:
            asn_data = await geolocation_service.asn_info(asn)
            logger.info(json.dumps(asn_data, indent=2))
            logger.info(f"- Organisation: {asn_data.get('organisation') or 'Not found'}")
            logger.info(f"- Registry: {asn_data.get('registry') or 'Not found'}")
            logger.info(f"- Registered Country: {asn_data.get('registeredCountryName') or 'Not found'}")
            logger.info(f"- Total IPv4 Addresses: {asn_data.get('totalIpv4Addresses') or 0}")
            logger.info(f"- Rank: {asn_data.get('rankText') or 'Not found'}")
        except HTTPException as e:
            logger.warning(f"⚠️ ASN lookup failed: {e.status_code} {e.detail}")

    _log_confidence_area(ip_data, settings)

    _log_section("⚙️ ENVIRONMENT CHECK")
    logger.info(f"- BIGDATACLOUD_API_KEY: {'Set (hidden)' if settings.has_api_key else 'NOT SET'}")
    logger.info(f"- DISCORD_WEBHOOK_URL: {'Set' if settings.discord_webhook_url else 'NOT SET'}")
    logger.info(f"- Confidence area axis order: {settings.confidence_area_axis_order}")

    logger.info(RULE)
    logger.info("✅ DEBUG SESSION COMPLETE")
    logger.info(RULE)


@router.get(
    "/debug-ip",
    response_class=HTMLResponse,
    summary="Debug IP lookup",
    description="Run the visitor lookups with verbose server-side logging. Never notifies.",
)
async def debug_ip(
    request: Request,
    geolocation_service: GeolocationService = Depends(get_geolocation_service),
    settings: Settings = Depends(get_settings),
) -> HTMLResponse:
    """Log everything known about the caller and return a static page."""
    try:
        await _run_debug_session(request, geolocation_service, settings)
    except Exception:
        # The page is returned regardless; the failure is in the logs
        logger.exception("FATAL ERROR IN DEBUG ENDPOINT")

    html = DEBUG_PAGE.format(
        timestamp=datetime.now(timezone.utc).isoformat(),
        method=request.method,
    )
    return HTMLResponse(content=html, status_code=200)
