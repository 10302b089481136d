"""Unit tests for client IP and user-agent extraction."""

import pytest
from fastapi import Request

from geolog.services.client_info import (
    UNKNOWN_IP,
    get_client_ip,
    get_reported_headers,
    is_public_ip,
    normalize_ip,
    parse_user_agent,
)


def make_request(headers=None, client=("127.0.0.1", 50000)):
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/api/log",
        "headers": [
            (name.lower().encode("latin-1"), value.encode("latin-1"))
            for name, value in (headers or {}).items()
        ],
        "client": client,
    }
    return Request(scope)


CHROME_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
EDGE_WINDOWS = CHROME_WINDOWS + " Edg/120.0.0.0"
OPERA_MAC = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 OPR/106.0.0.0"
)
SAFARI_IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_2 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.2 Mobile/15E148 Safari/604.1"
)
SAFARI_IPAD = (
    "Mozilla/5.0 (iPad; CPU OS 17_2 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.2 Mobile/15E148 Safari/604.1"
)
CHROME_ANDROID = (
    "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36"
)
FIREFOX_LINUX = "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0"
GOOGLEBOT = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"


class TestClientIp:
    """Test client IP extraction from proxy headers."""

    def test_forwarded_for_first_entry(self):
        """X-Forwarded-For wins and only its first entry is used."""
        request = make_request({"X-Forwarded-For": "8.8.8.8, 10.0.0.1, 10.0.0.2"})
        assert get_client_ip(request) == "8.8.8.8"

    def test_header_precedence(self):
        """Headers are checked in a fixed order."""
        request = make_request({
            "X-Real-IP": "1.1.1.1",
            "CF-Connecting-IP": "9.9.9.9",
        })
        assert get_client_ip(request) == "1.1.1.1"

        request = make_request({
            "CF-Connecting-IP": "9.9.9.9",
            "X-Vercel-Forwarded-For": "4.4.4.4",
        })
        assert get_client_ip(request) == "9.9.9.9"

        request = make_request({"X-Vercel-Forwarded-For": "4.4.4.4"})
        assert get_client_ip(request) == "4.4.4.4"

    def test_blank_header_skipped(self):
        """An empty header value falls through to the next source."""
        request = make_request({"X-Forwarded-For": "  ", "X-Real-IP": "1.1.1.1"})
        assert get_client_ip(request) == "1.1.1.1"

    def test_falls_back_to_socket_peer(self):
        """Without proxy headers the socket peer address is used."""
        request = make_request(client=("203.0.113.5", 443))
        assert get_client_ip(request) == "203.0.113.5"

    def test_unknown_without_any_source(self):
        """No headers and no peer gives the placeholder address."""
        request = make_request(client=None)
        assert get_client_ip(request) == UNKNOWN_IP

    def test_ipv4_mapped_prefix_stripped(self):
        """IPv4-mapped IPv6 addresses are reported as plain IPv4."""
        request = make_request({"X-Forwarded-For": "::ffff:8.8.4.4"})
        assert get_client_ip(request) == "8.8.4.4"

    @pytest.mark.parametrize("value,expected", [
        ("8.8.8.8", "8.8.8.8"),
        (" 8.8.8.8 , 1.1.1.1", "8.8.8.8"),
        ("::FFFF:1.2.3.4", "1.2.3.4"),
        ("2001:4860:4860::8888", "2001:4860:4860::8888"),
        ("", UNKNOWN_IP),
        (None, UNKNOWN_IP),
        (",", UNKNOWN_IP),
        ("8.8.8.8:51234", "8.8.8.8"),
        ("8.8.8.8:51234, 10.0.0.1", "8.8.8.8"),
        ("[2001:4860:4860::8888]:443", "2001:4860:4860::8888"),
        ("[2001:4860:4860::8888]", "2001:4860:4860::8888"),
        ("[::ffff:8.8.8.8]:80", "8.8.8.8"),
        ("2001:db8::1:443", "2001:db8::1:443"),
    ])
    def test_normalize_ip(self, value, expected):
        """Forwarded values are normalized to a single address."""
        assert normalize_ip(value) == expected

    def test_forwarded_address_with_port_is_public(self):
        """A port appended by the proxy does not hide a public address."""
        request = make_request({"X-Forwarded-For": "8.8.8.8:51234"})

        ip = get_client_ip(request)

        assert ip == "8.8.8.8"
        assert is_public_ip(ip) is True

    def test_untrusted_forwarded_headers_ignored(self):
        """Proxy headers are ignored when they are not trusted."""
        request = make_request(
            {"X-Forwarded-For": "8.8.8.8", "X-Real-IP": "1.1.1.1"},
            client=("203.0.113.5", 443),
        )

        assert get_client_ip(request, trust_forwarded_headers=False) == "203.0.113.5"


class TestIsPublicIp:
    """Test public address detection."""

    @pytest.mark.parametrize("ip", ["8.8.8.8", "1.1.1.1", "2001:4860:4860::8888"])
    def test_public(self, ip):
        assert is_public_ip(ip) is True

    @pytest.mark.parametrize("ip", [
        "127.0.0.1",
        "10.0.0.1",
        "192.168.1.1",
        "172.16.0.1",
        "0.0.0.0",
        "::1",
        "fe80::1",
        "not-an-ip",
        "",
    ])
    def test_not_public(self, ip):
        assert is_public_ip(ip) is False


class TestParseUserAgent:
    """Test user-agent sniffing."""

    @pytest.mark.parametrize("ua,browser,os_name,device", [
        (CHROME_WINDOWS, "Chrome", "Windows", "Desktop"),
        (EDGE_WINDOWS, "Edge", "Windows", "Desktop"),
        (OPERA_MAC, "Opera", "Mac OS", "Desktop"),
        (SAFARI_IPHONE, "Safari", "iOS", "Mobile"),
        (SAFARI_IPAD, "Safari", "iOS", "Tablet"),
        (CHROME_ANDROID, "Chrome", "Android", "Mobile"),
        (FIREFOX_LINUX, "Firefox", "Linux", "Desktop"),
    ])
    def test_known_browsers(self, ua, browser, os_name, device):
        """Common browsers are identified correctly."""
        info = parse_user_agent(ua)
        assert info.browser == browser
        assert info.os == os_name
        assert info.device == device
        assert info.raw == ua

    @pytest.mark.parametrize("ua", [GOOGLEBOT, "curl/8.4.0", "python-requests/2.31.0"])
    def test_bots(self, ua):
        """Crawlers and command-line clients are classed as bots."""
        assert parse_user_agent(ua).device == "Bot"

    def test_missing_user_agent(self):
        """A missing user-agent yields unknowns."""
        info = parse_user_agent(None)
        assert info.browser == "Unknown"
        assert info.os == "Unknown"
        assert info.device == "Desktop"
        assert info.raw == ""

    def test_long_user_agent_truncated(self):
        """Raw user-agent is capped at 200 characters plus an ellipsis."""
        info = parse_user_agent("A" * 300)
        assert info.raw == "A" * 200 + "..."

    def test_exactly_max_length_not_truncated(self):
        info = parse_user_agent("B" * 200)
        assert info.raw == "B" * 200


class TestReportedHeaders:
    """Test header subset copied into reports."""

    def test_selected_headers_only(self):
        request = make_request({
            "Accept-Language": "en-US,en;q=0.9",
            "Cookie": "session=secret",
            "Sec-CH-UA-Platform": '"Windows"',
        })
        headers = get_reported_headers(request)

        assert headers["accept-language"] == "en-US,en;q=0.9"
        assert headers["sec-ch-ua-platform"] == '"Windows"'
        assert headers["accept"] is None
        assert "cookie" not in headers
