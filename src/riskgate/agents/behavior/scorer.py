"""Behavioral Risk Scorer - bounded composite score from behavioral signals.

Six independent sub-scorers, each bounded by its weight:

    failed attempts   0..50
    gps displacement  0..15
    typing cadence    0..12
    time of day       0..8
    velocity          0..10
    new device        0..5

The five soft factors are jointly capped at 50, so behavioral anomalies
alone never produce a full-risk verdict while failed attempts alone can.
"""

import math
from datetime import datetime, timezone
from typing import Iterable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from riskgate.common.constants import RiskLevelConstants, ScoringConstants
from riskgate.core.types import RiskLevel
from riskgate.data.schemas.principal import (
    ActivityHours,
    KeystrokeBaseline,
    KnownDevice,
    LastLogin,
    Principal,
)
from riskgate.data.schemas.risk import RiskBreakdown
from riskgate.data.schemas.signals import GeoPoint, RequestSignals, TypingSample
from riskgate.governance.schemas import ScoringRules


def scaled(weight: int, fraction: float) -> int:
    """weight * fraction rounded half-up."""
    return int(math.floor(weight * fraction + 0.5))


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance between two points in kilometres."""
    lat1, lon1 = math.radians(a.lat), math.radians(a.lon)
    lat2, lon2 = math.radians(b.lat), math.radians(b.lon)
    d_lat = lat2 - lat1
    d_lon = lon2 - lon1
    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    return ScoringConstants.EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def score_failed_attempts(count: int) -> int:
    """min(50, count * 10); non-positive counts score 0."""
    if count <= 0:
        return 0
    return min(
        ScoringConstants.WEIGHT_FAILED_ATTEMPTS,
        count * ScoringConstants.POINTS_PER_FAILED_ATTEMPT,
    )


def score_gps(last_known: Optional[GeoPoint], current: Optional[GeoPoint]) -> int:
    weight = ScoringConstants.WEIGHT_GPS
    if current is None:
        return 0
    if last_known is None:
        # No prior location on record
        return scaled(weight, 0.8)

    distance = haversine_km(last_known, current)
    if distance <= ScoringConstants.GPS_NEAR_KM:
        return 0
    if distance <= ScoringConstants.GPS_REGIONAL_KM:
        return scaled(weight, 0.33)
    if distance <= ScoringConstants.GPS_CONTINENTAL_KM:
        return scaled(weight, 0.66)
    return weight


def score_typing(baseline: Optional[KeystrokeBaseline], sample: Optional[TypingSample]) -> int:
    weight = ScoringConstants.WEIGHT_TYPING
    if baseline is None or baseline.samples < ScoringConstants.TYPING_MIN_BASELINE_SAMPLES:
        return scaled(weight, 0.15)
    if sample is None:
        return 0

    z = abs(sample.mean_interval - baseline.mean_iki) / (baseline.std_iki or 1.0)
    if z < 1:
        return 0
    if z < 2:
        return scaled(weight, 0.45)
    if z < 3:
        return scaled(weight, 0.8)
    return weight


def local_hour(timestamp: datetime, tz_name: str) -> int:
    """Hour of day of a timestamp in the given IANA timezone."""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    try:
        zone = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        zone = timezone.utc
    return timestamp.astimezone(zone).hour


def score_time_of_day(timestamp: Optional[datetime], hours: ActivityHours) -> int:
    weight = ScoringConstants.WEIGHT_TIME_OF_DAY
    if timestamp is None:
        return 0

    hour = local_hour(timestamp, hours.tz)
    grace = ScoringConstants.TIME_OF_DAY_GRACE_HOURS
    if hours.start <= hour < hours.end:
        return 0
    if hours.start - grace <= hour < hours.start or hours.end <= hour < hours.end + grace:
        return scaled(weight, 0.6)
    return weight


def score_velocity(
    last_login: Optional[LastLogin],
    now: Optional[datetime],
    current: Optional[GeoPoint],
) -> int:
    """Impossible-travel penalty. Missing data scores 0."""
    weight = ScoringConstants.WEIGHT_VELOCITY
    if last_login is None or last_login.gps is None or current is None or now is None:
        return 0

    distance = haversine_km(last_login.gps, current)
    previous = last_login.timestamp
    if previous.tzinfo is None:
        previous = previous.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    elapsed_hours = max(
        abs((now - previous).total_seconds()) / 3600.0,
        ScoringConstants.VELOCITY_MIN_ELAPSED_HOURS,
    )
    speed = distance / elapsed_hours
    if speed > ScoringConstants.VELOCITY_IMPOSSIBLE_KMH:
        return weight
    if speed > ScoringConstants.VELOCITY_SUSPICIOUS_KMH:
        return scaled(weight, 0.6)
    return 0


def score_new_device(known_devices: Iterable[KnownDevice], fingerprint: Optional[str]) -> int:
    if not fingerprint:
        return 0
    if any(device.fingerprint == fingerprint for device in known_devices):
        return 0
    return ScoringConstants.WEIGHT_NEW_DEVICE


def risk_level(total: int) -> RiskLevel:
    """Map a 0-100 score to its risk level."""
    if total <= RiskLevelConstants.LOW_MAX:
        return RiskLevel.LOW
    if total <= RiskLevelConstants.MEDIUM_MAX:
        return RiskLevel.MEDIUM
    if total <= RiskLevelConstants.HIGH_MAX:
        return RiskLevel.HIGH
    return RiskLevel.CRITICAL


class BehavioralRiskScorer:
    """Behavioral Risk Scorer.

    Responsibilities:
    - Score each behavioral signal against the principal's baselines
    - Aggregate into a bounded RiskBreakdown

    Constraints:
    - Pure: no I/O, no side effects
    - Missing baselines are moderate risk inputs, not errors
    """

    def __init__(self, rules: Optional[ScoringRules] = None):
        self.rules = rules or ScoringRules()

    def default_activity_hours(self) -> ActivityHours:
        return ActivityHours(
            start=self.rules.activity_start_hour,
            end=self.rules.activity_end_hour,
            tz=self.rules.reference_timezone,
        )

    def score(
        self,
        principal: Principal,
        signals: RequestSignals,
        failed_count: int = 0,
    ) -> RiskBreakdown:
        """Score one request.

        Args:
            principal: Principal with behavioral baselines
            signals: Signals of the current request
            failed_count: Failed authentication attempts to account for

        Returns:
            RiskBreakdown with per-factor contributions and bounded total
        """
        last_fix = principal.last_location()
        return RiskBreakdown(
            failed_attempts=score_failed_attempts(failed_count),
            gps=score_gps(last_fix.point if last_fix else None, signals.gps),
            typing=score_typing(principal.keystroke_baseline, signals.typing_sample),
            time_of_day=score_time_of_day(
                signals.timestamp,
                principal.activity_hours or self.default_activity_hours(),
            ),
            velocity=score_velocity(principal.last_login, signals.timestamp, signals.gps),
            new_device=score_new_device(principal.known_devices, signals.device_fingerprint),
        )
