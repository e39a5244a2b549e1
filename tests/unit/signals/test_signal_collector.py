"""Unit tests for the Signal Collector and geolocation resolvers."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from riskgate.common.exceptions import SignalValidationError
from riskgate.data.schemas.signals import Location
from riskgate.signals import (
    HttpGeolocationResolver,
    SignalCollector,
    StaticGeolocationResolver,
    derive_fingerprint,
    is_suspicious_user_agent,
)


CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0 Safari/537.36"
)
FIXED_NOW = datetime(2026, 3, 2, 6, 30, tzinfo=timezone.utc)


@pytest.fixture
def collector():
    return SignalCollector(clock=lambda: FIXED_NOW)


@pytest.fixture
def browser_request() -> dict:
    return {
        "headers": {
            "User-Agent": CHROME_UA,
            "Accept-Language": "en-IN,en;q=0.9",
            "Accept-Encoding": "gzip, deflate, br",
        },
        "remote_addr": "203.0.113.7",
        "principal_id": "usr_001",
        "client_info": {"screen_resolution": "1920x1080", "timezone": "Asia/Kolkata"},
    }


class TestClientAddress:
    """Client IP resolution order."""

    def test_forwarded_for_first_hop_wins(self, collector, browser_request):
        browser_request["headers"]["X-Forwarded-For"] = "198.51.100.4, 10.0.0.1"
        browser_request["headers"]["X-Real-IP"] = "198.51.100.9"

        signals = collector.collect(browser_request)

        assert signals.ip_address == "198.51.100.4"

    def test_real_ip_before_socket_address(self, collector, browser_request):
        browser_request["headers"]["X-Real-IP"] = "198.51.100.9"

        assert collector.collect(browser_request).ip_address == "198.51.100.9"

    def test_socket_address_fallback(self, collector, browser_request):
        assert collector.collect(browser_request).ip_address == "203.0.113.7"

    def test_no_address_is_unknown(self, collector, browser_request):
        del browser_request["remote_addr"]

        assert collector.collect(browser_request).ip_address == "unknown"

    def test_malformed_address_is_rejected(self, collector, browser_request):
        browser_request["headers"]["X-Forwarded-For"] = "not-an-ip"

        with pytest.raises(SignalValidationError):
            collector.collect(browser_request)


class TestFingerprint:
    """Device fingerprint derivation and client-supplied fingerprints."""

    def test_derivation_is_deterministic(self, collector, browser_request):
        first = collector.collect(browser_request)
        second = collector.collect(browser_request)

        assert first.device_fingerprint == second.device_fingerprint
        assert first.fingerprint_source == "derived"
        assert len(first.device_fingerprint) == 32

    def test_derivation_is_sensitive_to_client_info(self):
        base = derive_fingerprint(CHROME_UA, "en", "gzip")
        other = derive_fingerprint(CHROME_UA, "en", "br")

        assert base != other
        assert all(ch in "0123456789abcdef" for ch in base)

    def test_client_fingerprint_is_authoritative(self, collector, browser_request):
        browser_request["device_fingerprint"] = "ABCDEF0123456789ABCDEF0123456789"

        signals = collector.collect(browser_request)

        assert signals.fingerprint_source == "client"
        assert signals.device_fingerprint == "abcdef0123456789abcdef0123456789"
        assert signals.derived_fingerprint != signals.device_fingerprint

    @pytest.mark.parametrize("value", ["short", "zz" * 16, "a" * 130])
    def test_malformed_client_fingerprint_is_rejected(self, collector, browser_request, value):
        browser_request["device_fingerprint"] = value

        with pytest.raises(SignalValidationError):
            collector.collect(browser_request)


class TestUserAgent:
    """User agent heuristics."""

    def test_browser_is_not_suspicious(self):
        assert not is_suspicious_user_agent(CHROME_UA)

    @pytest.mark.parametrize("ua", ["", "curl/8.4.0", "Googlebot/2.1", "MyApp/1.0"])
    def test_non_browser_is_suspicious(self, ua):
        assert is_suspicious_user_agent(ua)

    def test_vpn_marker_detected(self, collector, browser_request):
        browser_request["headers"]["User-Agent"] = CHROME_UA + " SecureVPN/2.0"

        assert collector.collect(browser_request).is_vpn


class TestLocationAndTiming:
    """Location resolution, timestamps and typing samples."""

    def test_client_location_is_parsed(self, collector, browser_request):
        browser_request["location"] = "Kolkata, West Bengal, India"

        location = collector.collect(browser_request).location

        assert location.city == "Kolkata"
        assert location.country == "India"
        assert location.label == "Kolkata, West Bengal, India"

    def test_location_unknown_without_resolver(self, collector, browser_request):
        assert collector.collect(browser_request).location.is_unknown

    def test_resolver_used_when_client_silent(self, browser_request):
        browser_request["remote_addr"] = "49.36.10.20"
        resolver = StaticGeolocationResolver(
            {"49.36.0.0/16": Location(city="Mumbai", region="Maharashtra", country="India")}
        )
        collector = SignalCollector(geolocation=resolver, clock=lambda: FIXED_NOW)

        assert collector.collect(browser_request).location.city == "Mumbai"

    def test_failing_resolver_yields_unknown(self, browser_request):
        class Broken:
            def resolve(self, ip_address):
                raise RuntimeError("down")

        collector = SignalCollector(geolocation=Broken(), clock=lambda: FIXED_NOW)

        assert collector.collect(browser_request).location.is_unknown

    def test_timestamp_defaults_to_clock(self, collector, browser_request):
        assert collector.collect(browser_request).timestamp == FIXED_NOW

    def test_naive_timestamp_taken_as_utc(self, collector, browser_request):
        browser_request["timestamp"] = "2026-03-02T04:00:00"

        timestamp = collector.collect(browser_request).timestamp

        assert timestamp == datetime(2026, 3, 2, 4, 0, tzinfo=timezone.utc)

    def test_offset_timestamp_normalized(self, collector, browser_request):
        browser_request["timestamp"] = "2026-03-02T10:00:00+05:30"

        timestamp = collector.collect(browser_request).timestamp

        assert timestamp == FIXED_NOW - timedelta(hours=2)

    def test_typing_sample_collected(self, collector, browser_request):
        browser_request["keystroke_intervals"] = [100.0, 120.0, 140.0]

        sample = collector.collect(browser_request).typing_sample

        assert sample.mean_interval == pytest.approx(120.0)

    def test_negative_interval_rejected(self, collector, browser_request):
        browser_request["keystroke_intervals"] = [100.0, -5.0]

        with pytest.raises(SignalValidationError):
            collector.collect(browser_request)

    def test_malformed_request_rejected(self, collector):
        with pytest.raises(SignalValidationError):
            collector.collect({"failed_attempts": -1})


class TestGeolocationResolvers:
    """Static and HTTP resolvers never raise."""

    def test_private_address_is_unknown(self):
        resolver = StaticGeolocationResolver(default=Location(country="India"))

        assert resolver.resolve("10.1.2.3").is_unknown
        assert resolver.resolve("127.0.0.1").is_unknown

    def test_default_for_unmatched_public_address(self):
        resolver = StaticGeolocationResolver(default=Location(country="India"))

        assert resolver.resolve("8.8.8.8").country == "India"

    def test_http_resolver_success(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/json/8.8.8.8"
            return httpx.Response(
                200,
                json={
                    "status": "success",
                    "country": "United States",
                    "regionName": "California",
                    "city": "Mountain View",
                },
            )

        resolver = HttpGeolocationResolver(
            "http://geo.test", client=httpx.Client(transport=httpx.MockTransport(handler))
        )

        location = resolver.resolve("8.8.8.8")

        assert location.label == "Mountain View, California, United States"

    def test_http_resolver_failure_is_unknown(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500)

        resolver = HttpGeolocationResolver(
            "http://geo.test", client=httpx.Client(transport=httpx.MockTransport(handler))
        )

        assert resolver.resolve("8.8.8.8").is_unknown

    def test_http_resolver_fail_status_is_unknown(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"status": "fail", "message": "reserved range"})

        resolver = HttpGeolocationResolver(
            "http://geo.test", client=httpx.Client(transport=httpx.MockTransport(handler))
        )

        assert resolver.resolve("8.8.8.8").is_unknown
