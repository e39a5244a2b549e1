"""Behavioral Risk Scorer - module init."""

from riskgate.agents.behavior.scorer import (
    BehavioralRiskScorer,
    haversine_km,
    risk_level,
    score_failed_attempts,
    score_gps,
    score_new_device,
    score_time_of_day,
    score_typing,
    score_velocity,
)

__all__ = [
    "BehavioralRiskScorer",
    "haversine_km",
    "risk_level",
    "score_failed_attempts",
    "score_gps",
    "score_new_device",
    "score_time_of_day",
    "score_typing",
    "score_velocity",
]
