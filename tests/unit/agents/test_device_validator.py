"""Unit tests for the Device & Location Validator."""

from datetime import datetime, timezone

import pytest

from riskgate.agents.device import (
    DeviceValidator,
    combine_device_risk,
    country_token,
    validate_device,
    validate_location,
)
from riskgate.data.schemas.principal import Principal
from riskgate.data.schemas.risk import DeviceRiskFactors
from riskgate.data.schemas.signals import Location, RequestSignals


FP = "3f2a9c0d5e6b7a8190f1e2d3c4b5a697"
OTHER_FP = "00112233445566778899aabbccddeeff"


def make_signals(fingerprint=FP, location="Kolkata, West Bengal, India", **overrides):
    data = dict(
        ip_address="49.36.10.20",
        user_agent="Mozilla/5.0 Chrome/120.0",
        device_fingerprint=fingerprint,
        derived_fingerprint=fingerprint,
        fingerprint_source="derived",
        location=Location.parse(location) if location else Location.unknown(),
        timestamp=datetime(2026, 3, 2, 6, 30, tzinfo=timezone.utc),
    )
    data.update(overrides)
    return RequestSignals(**data)


@pytest.fixture
def principal():
    return Principal(
        principal_id="usr_001",
        registered_fingerprint=FP,
        registered_location="Kolkata, West Bengal, India",
    )


class TestValidateDevice:
    """Fingerprint comparison."""

    def test_match_scores_zero(self):
        verdict = validate_device(FP, FP)

        assert verdict.is_match
        assert verdict.risk_weight == 0

    def test_mismatch_scores_25(self):
        verdict = validate_device(OTHER_FP, FP)

        assert not verdict.is_match
        assert verdict.risk_weight == 25

    def test_no_baseline_scores_15(self):
        verdict = validate_device(FP, None)

        assert not verdict.is_match
        assert verdict.risk_weight == 15

    def test_missing_current_is_mismatch(self):
        assert validate_device(None, FP).risk_weight == 25


class TestValidateLocation:
    """Coarse country comparison."""

    def test_same_country_different_city_matches(self):
        verdict = validate_location("Mumbai, Maharashtra, India", "Kolkata, West Bengal, India")

        assert verdict.is_match
        assert verdict.risk_weight == 0

    def test_country_compare_is_case_insensitive(self):
        assert validate_location("Delhi, INDIA", "Kolkata, india").is_match

    def test_different_country_scores_20(self):
        verdict = validate_location("Berlin, Germany", "Kolkata, West Bengal, India")

        assert not verdict.is_match
        assert verdict.risk_weight == 20

    @pytest.mark.parametrize("current,registered", [(None, "India"), ("India", None), ("", "")])
    def test_missing_side_scores_10(self, current, registered):
        assert validate_location(current, registered).risk_weight == 10

    def test_country_token(self):
        assert country_token(" Kolkata , West Bengal ,  India ") == "india"
        assert country_token(None) is None


class TestCombineDeviceRisk:
    """Aggregation of verdicts and extra negative factors."""

    def test_clean_request_scores_zero(self):
        result = combine_device_risk(validate_device(FP, FP), validate_location("India", "India"))

        assert result.total_risk == 0
        assert result.contributing_factors == ()

    def test_all_factors_listed(self):
        result = combine_device_risk(
            validate_device(OTHER_FP, FP),
            validate_location("Germany", "India"),
            DeviceRiskFactors(
                is_new_device=True,
                suspicious_user_agent=True,
                vpn_detected=True,
                recent_failed_attempts=2,
            ),
        )

        assert result.contributing_factors == (
            "device_mismatch",
            "location_anomaly",
            "new_device",
            "suspicious_user_agent",
            "vpn_detected",
            "recent_failures",
        )
        # 25 + 20 + 15 + 10 + 20 + 10
        assert result.total_risk == 100

    def test_recent_failures_capped_at_30(self):
        result = combine_device_risk(
            validate_device(FP, FP),
            validate_location("India", "India"),
            DeviceRiskFactors(recent_failed_attempts=50),
        )

        assert result.total_risk == 30

    def test_non_decreasing_in_each_factor(self):
        base = DeviceRiskFactors()
        device = validate_device(FP, FP)
        location = validate_location("India", "India")
        baseline_total = combine_device_risk(device, location, base).total_risk

        for field in ("is_new_device", "suspicious_user_agent", "vpn_detected"):
            worse = base.model_copy(update={field: True})
            assert combine_device_risk(device, location, worse).total_risk >= baseline_total

        previous = baseline_total
        for failures in range(0, 10):
            current = combine_device_risk(
                device, location, DeviceRiskFactors(recent_failed_attempts=failures)
            ).total_risk
            assert current >= previous
            previous = current


class TestDeviceValidator:
    """Assessment against a principal."""

    def test_known_device_and_location(self, principal):
        result = DeviceValidator().assess(principal, make_signals())

        assert result.device.is_match
        assert result.location.is_match
        assert result.total_risk == 0

    def test_unknown_location_is_moderate(self, principal):
        result = DeviceValidator().assess(principal, make_signals(location=None))

        assert result.total_risk == 10
        assert "location_anomaly" in result.contributing_factors

    def test_new_device_without_baseline(self):
        principal = Principal(principal_id="usr_002", registered_location="India")

        result = DeviceValidator().assess(principal, make_signals(location="India"))

        # no baseline 15 + new device 15
        assert result.total_risk == 30
        assert "new_device" in result.contributing_factors

    def test_vpn_and_recent_failures(self, principal):
        result = DeviceValidator().assess(principal, make_signals(is_vpn=True), 3)

        assert result.total_risk == 35
        assert result.contributing_factors == ("vpn_detected", "recent_failures")
