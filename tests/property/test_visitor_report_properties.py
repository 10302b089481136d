"""Property-based tests for visitor report assembly.

Feature: visitor-report
Tests universal properties that should hold for all valid inputs.
"""
from hypothesis import given, settings, strategies as st
from hypothesis.strategies import composite

from geolog.config import Settings
from geolog.schemas.visitor import ThreatInfo
from geolog.services.client_info import UA_RAW_MAX_LENGTH, normalize_ip, parse_user_agent
from geolog.services.discord_notifier import (
    COLOR_CLEAN,
    COLOR_ELEVATED,
    COLOR_GUARDED,
    COLOR_HIGH,
    threat_color,
)
from geolog.services.report_builder import build_visitor_report, extract_threat, format_asn


COLOR_RANK = [COLOR_CLEAN, COLOR_GUARDED, COLOR_ELEVATED, COLOR_HIGH]

json_scalars = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(min_value=-10**6, max_value=10**6),
    st.floats(allow_nan=False, allow_infinity=False),
    st.text(max_size=20),
)


@composite
def threat_payloads(draw):
    """Threat-intelligence shaped payloads with arbitrary scalar values."""
    keys = ["isKnownAttacker", "isKnownAbuser", "isTor", "isVpn", "isProxy", "threatScore", "confidence"]
    return {key: draw(json_scalars) for key in draw(st.lists(st.sampled_from(keys), unique=True))}


class TestThreatScoreBounds:
    """
    Feature: visitor-report, Property: Bounded Threat Score

    Threat score and confidence always land in 0-100 whatever the provider sends.
    """

    @given(payload=threat_payloads())
    @settings(max_examples=200, deadline=None)
    def test_scores_bounded(self, payload):
        threat = extract_threat({}, payload)

        assert 0 <= threat.threat_score <= 100
        assert 0 <= threat.confidence <= 100


class TestThreatColorMonotonic:
    """
    Feature: visitor-report, Property: Colour Severity

    A higher threat score never produces a less severe embed colour.
    """

    @given(
        low=st.integers(min_value=0, max_value=100),
        high=st.integers(min_value=0, max_value=100)
    )
    @settings(max_examples=100, deadline=None)
    def test_color_monotonic(self, low, high):
        if low > high:
            low, high = high, low

        low_color = threat_color(ThreatInfo(available=True, threat_score=low))
        high_color = threat_color(ThreatInfo(available=True, threat_score=high))

        assert COLOR_RANK.index(low_color) <= COLOR_RANK.index(high_color)


class TestAsnFormatting:
    """
    Feature: visitor-report, Property: ASN Normalisation

    Any non-negative integer formats to AS<n>, regardless of prefix and case.
    """

    @given(
        number=st.integers(min_value=0, max_value=4294967295),
        prefix=st.sampled_from(["", "AS", "as", "As"])
    )
    @settings(max_examples=100, deadline=None)
    def test_format_asn(self, number, prefix):
        assert format_asn(f"{prefix}{number}") == f"AS{number}"


class TestClientInputs:
    """
    Feature: visitor-report, Property: Robust Client Parsing

    Arbitrary header values never break IP or user-agent parsing.
    """

    @given(value=st.text(max_size=100))
    @settings(max_examples=200, deadline=None)
    def test_normalize_ip_never_raises(self, value):
        result = normalize_ip(value)

        assert result
        assert "," not in result

    @given(ua=st.text(max_size=500))
    @settings(max_examples=200, deadline=None)
    def test_user_agent_raw_is_capped(self, ua):
        info = parse_user_agent(ua)

        assert len(info.raw) <= UA_RAW_MAX_LENGTH + 3
        assert info.device in {"Bot", "Tablet", "Mobile", "Desktop"}


class TestReportWithArbitraryPayloads:
    """
    Feature: visitor-report, Property: Partial Data Tolerance

    A report is always produced from malformed upstream payloads.
    """

    @given(
        ip_data=st.dictionaries(
            st.sampled_from(["location", "country", "network", "confidenceArea", "hazardReport", "asn"]),
            st.one_of(json_scalars, st.lists(json_scalars, max_size=4), st.dictionaries(st.text(max_size=8), json_scalars, max_size=4)),
            max_size=6
        )
    )
    @settings(max_examples=200, deadline=None)
    def test_report_always_built(self, ip_data):
        report = build_visitor_report("8.8.8.8", "test-agent", Settings(), ip_data=ip_data)

        assert report.ip == "8.8.8.8"
        radius = report.location.accuracy_radius_km
        assert radius is None or radius >= 0
