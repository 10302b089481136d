"""Client IP and user-agent extraction from incoming requests."""
import ipaddress
import re
from typing import List, Optional, Pattern, Tuple

from fastapi import Request

from geolog.schemas.visitor import DeviceInfo

# Checked in order; the first header with a value wins
IP_HEADERS = (
    "x-forwarded-for",
    "x-real-ip",
    "cf-connecting-ip",
    "x-vercel-forwarded-for",
)

UNKNOWN_IP = "0.0.0.0"
UA_RAW_MAX_LENGTH = 200

# Headers copied into the visitor report
REPORTED_HEADERS = (
    "accept",
    "accept-language",
    "accept-encoding",
    "sec-ch-ua",
    "sec-ch-ua-mobile",
    "sec-ch-ua-platform",
)

# Order matters: Edge and Opera user-agents also contain "Chrome",
# and Chrome user-agents also contain "Safari".
BROWSER_PATTERNS: List[Tuple[Pattern, str]] = [
    (re.compile(r"Edg(e|A|iOS)?/"), "Edge"),
    (re.compile(r"OPR/|Opera"), "Opera"),
    (re.compile(r"SamsungBrowser/"), "Samsung Internet"),
    (re.compile(r"Firefox/|FxiOS/"), "Firefox"),
    (re.compile(r"Chrome/|CriOS/"), "Chrome"),
    (re.compile(r"Safari/"), "Safari"),
]

# Android user-agents contain "Linux"; iOS ones contain "Mac OS X"
OS_PATTERNS: List[Tuple[Pattern, str]] = [
    (re.compile(r"Windows"), "Windows"),
    (re.compile(r"Android"), "Android"),
    (re.compile(r"iPhone|iPad|iPod"), "iOS"),
    (re.compile(r"Mac OS|Macintosh"), "Mac OS"),
    (re.compile(r"CrOS"), "Chrome OS"),
    (re.compile(r"Linux"), "Linux"),
]

DEVICE_PATTERNS: List[Tuple[Pattern, str]] = [
    (re.compile(r"bot|crawler|spider|curl|wget|python-requests|httpx", re.IGNORECASE), "Bot"),
    (re.compile(r"Tablet|iPad"), "Tablet"),
    (re.compile(r"Mobile|iPhone|Android"), "Mobile"),
]


def _first_header_value(request: Request, trust_forwarded_headers: bool) -> Optional[str]:
    headers = IP_HEADERS if trust_forwarded_headers else ()
    for header in headers:
        value = request.headers.get(header)
        if value and value.strip():
            return value
    if request.client and request.client.host:
        return request.client.host
    return None


def _strip_port(ip: str) -> str:
    """Drop a port from "1.2.3.4:80" or "[2001:db8::1]:443"."""
    if ip.startswith("["):
        end = ip.find("]")
        return ip[1:end] if end != -1 else ip
    host, sep, port = ip.rpartition(":")
    # A single colon can only separate an IPv4 address or hostname from a port
    if sep and ":" not in host and port.isdecimal():
        return host
    return ip


def normalize_ip(value: Optional[str]) -> str:
    """
    Take the first entry of a forwarded list, then strip any port and the
    IPv4-mapped IPv6 prefix.
    """
    if not value:
        return UNKNOWN_IP
    ip = _strip_port(value.split(",")[0].strip())
    if ip.lower().startswith("::ffff:"):
        ip = ip[7:]
    return ip or UNKNOWN_IP


def get_client_ip(request: Request, trust_forwarded_headers: bool = True) -> str:
    """
    Get client IP address from request.

    Handles proxy headers (X-Forwarded-For, X-Real-IP, CF-Connecting-IP,
    X-Vercel-Forwarded-For) before falling back to the socket peer. With
    ``trust_forwarded_headers=False`` only the socket peer is used.
    """
    return normalize_ip(_first_header_value(request, trust_forwarded_headers))


def is_public_ip(ip: str) -> bool:
    """Whether the address is globally routable and worth geolocating."""
    try:
        return ipaddress.ip_address(ip).is_global
    except ValueError:
        return False


def _match(patterns: List[Tuple[Pattern, str]], user_agent: str, default: str) -> str:
    for pattern, name in patterns:
        if pattern.search(user_agent):
            return name
    return default


def parse_user_agent(user_agent: Optional[str]) -> DeviceInfo:
    """Sniff browser, OS and device class from a user-agent string."""
    ua = user_agent or ""
    raw = ua[:UA_RAW_MAX_LENGTH] + ("..." if len(ua) > UA_RAW_MAX_LENGTH else "")

    return DeviceInfo(
        browser=_match(BROWSER_PATTERNS, ua, "Unknown"),
        os=_match(OS_PATTERNS, ua, "Unknown"),
        device=_match(DEVICE_PATTERNS, ua, "Desktop"),
        raw=raw,
    )


def get_reported_headers(request: Request) -> dict:
    """Subset of request headers included in the visitor report."""
    return {name: request.headers.get(name) for name in REPORTED_HEADERS}
