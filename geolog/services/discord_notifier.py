"""Discord webhook notifications for visitor reports."""

import logging
from typing import Any, Dict, List, Optional

import httpx

from geolog.config import Settings
from geolog.schemas.visitor import ThreatInfo, VisitorReport

logger = logging.getLogger(__name__)

COLOR_NO_DATA = 0x3498DB
COLOR_HIGH = 0xFF0000
COLOR_ELEVATED = 0xFF9900
COLOR_GUARDED = 0xFFFF00
COLOR_CLEAN = 0x00FF00

EMBED_TITLE = "🌐 NEW VISITOR"
FIELD_VALUE_LIMIT = 1024


class NotificationError(Exception):
    """Raised when the webhook rejects or cannot receive a notification."""


def threat_color(threat: Optional[ThreatInfo]) -> int:
    """Embed colour by threat score: red >= 70, orange >= 40, yellow >= 20, else green."""
    if threat is None or not threat.available:
        return COLOR_NO_DATA
    if threat.threat_score >= 70:
        return COLOR_HIGH
    if threat.threat_score >= 40:
        return COLOR_ELEVATED
    if threat.threat_score >= 20:
        return COLOR_GUARDED
    return COLOR_CLEAN


def threat_status_text(threat: Optional[ThreatInfo]) -> str:
    """Summary line(s) for the threat field."""
    if threat is None or not threat.available:
        return "No threat data available"

    threats = threat.active_threats()
    if not threats:
        return "✅ Clean - No threats detected"

    return (
        f"🚨 **Threats:** {', '.join(threats)}\n"
        f"**Score:** {threat.threat_score}/100\n"
        f"**Confidence:** {threat.confidence}%"
    )


def _yes_no(value: Optional[bool]) -> str:
    if value is None:
        return "Unknown"
    return "Yes" if value else "No"


def _field(name: str, value: str, inline: bool = True) -> Dict[str, Any]:
    if len(value) > FIELD_VALUE_LIMIT:
        value = value[:FIELD_VALUE_LIMIT - 3] + "..."
    return {"name": name, "value": value, "inline": inline}


def build_embed(report: VisitorReport) -> Dict[str, Any]:
    """Webhook payload for a visitor report."""
    loc = report.location
    net = report.network

    if loc.accuracy_radius_km is not None:
        radius = f"{loc.accuracy_radius_km} km"
    elif loc.accuracy_radius_suppressed:
        radius = "Withheld (hosting network)"
    else:
        radius = "Unknown"

    calling_code = f"+{loc.calling_code}" if loc.calling_code else "Unknown"

    fields: List[Dict[str, Any]] = [
        _field("📍 IP ADDRESS", f"```{report.ip}```", inline=False),
        _field(
            "🌍 LOCATION",
            f"**Country:** {loc.country} ({loc.country_code})\n"
            f"**Region:** {loc.region}\n"
            f"**City:** {loc.city}\n"
            f"**Postal Code:** {loc.postcode or 'Unknown'}",
        ),
        _field(
            "📡 NETWORK",
            f"**ISP:** {net.isp}\n"
            f"**ASN:** {net.asn or 'Unknown'}\n"
            f"**Registry:** {net.registry}\n"
            f"**Route:** {net.bgp_prefix or 'Unknown'}",
        ),
        _field(
            "🕒 TIMEZONE",
            f"**Zone:** {loc.timezone}\n"
            f"**Local Time:** {loc.local_time or 'Unknown'}\n"
            f"**Offset:** {loc.utc_offset or '+00:00'}",
        ),
        _field("⚠️ THREAT STATUS", threat_status_text(report.threat)),
        _field(
            "📊 COORDINATES",
            f"**Latitude:** {loc.latitude if loc.latitude is not None else 'Unknown'}\n"
            f"**Longitude:** {loc.longitude if loc.longitude is not None else 'Unknown'}\n"
            f"**Accuracy Radius:** {radius}",
        ),
        _field(
            "🖥️ DEVICE INFO",
            f"**Browser:** {report.device.browser}\n"
            f"**OS:** {report.device.os}\n"
            f"**Device:** {report.device.device}",
        ),
        _field("📄 USER AGENT", f"```{report.device.raw or 'Unknown'}```", inline=False),
        _field(
            "📊 ADDITIONAL DATA",
            f"**Continent:** {loc.continent}\n"
            f"**Currency:** {loc.currency_code or 'Unknown'}\n"
            f"**Calling Code:** {calling_code}\n"
            f"**Is EU:** {_yes_no(loc.is_eu)}\n"
            f"**Daylight Saving:** {_yes_no(loc.is_daylight_saving)}",
        ),
    ]

    return {
        "embeds": [{
            "title": EMBED_TITLE,
            "color": threat_color(report.threat),
            "timestamp": report.timestamp.isoformat(),
            "fields": fields,
            "footer": {
                "text": f"Visitor Geolog • Threat Score: {report.threat.threat_score}/100"
            },
        }]
    }


class DiscordNotifier:
    """Posts visitor reports to a Discord webhook."""

    def __init__(self, settings: Settings):
        self.webhook_url = settings.discord_webhook_url
        self.timeout = settings.notification_timeout

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    async def send(self, report: VisitorReport) -> bool:
        """
        Post the report embed.

        Returns:
            False when no webhook is configured, True once delivered

        Raises:
            NotificationError: If the webhook is unreachable or answers non-2xx
        """
        if not self.enabled:
            logger.debug("Discord webhook not configured, skipping notification")
            return False

        payload = build_embed(report)

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.webhook_url, json=payload)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise NotificationError(
                f"Discord webhook failed: {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise NotificationError(f"Discord webhook unreachable: {e}") from e

        logger.info(f"Visitor {report.ip} sent to Discord")
        return True
