"""Risk schemas - device verdicts and the behavioral risk breakdown."""

from typing import Dict, Optional, Tuple

from pydantic import BaseModel, Field, model_validator

from riskgate.common.constants import ScoringConstants


class DeviceVerdict(BaseModel):
    """Match verdict for one device or location comparison."""
    is_match: bool
    risk_weight: int = Field(..., ge=0)
    reason: Optional[str] = None

    model_config = {"frozen": True}


class DeviceRiskFactors(BaseModel):
    """Extra negative factors folded into the device risk."""
    is_new_device: bool = False
    suspicious_user_agent: bool = False
    vpn_detected: bool = False
    recent_failed_attempts: int = Field(default=0, ge=0)


class DeviceRiskAssessment(BaseModel):
    """Combined device and location risk."""
    total_risk: int = Field(..., ge=0, le=100)
    contributing_factors: Tuple[str, ...] = ()
    device: DeviceVerdict
    location: DeviceVerdict

    model_config = {"frozen": True}


class RiskBreakdown(BaseModel):
    """Per-factor behavioral risk contributions and their bounded total.

    total = min(100, failed_attempts + min(50, sum of the soft factors))
    """
    failed_attempts: int = Field(..., ge=0, le=ScoringConstants.WEIGHT_FAILED_ATTEMPTS)
    gps: int = Field(..., ge=0, le=ScoringConstants.WEIGHT_GPS)
    typing: int = Field(..., ge=0, le=ScoringConstants.WEIGHT_TYPING)
    time_of_day: int = Field(..., ge=0, le=ScoringConstants.WEIGHT_TIME_OF_DAY)
    velocity: int = Field(..., ge=0, le=ScoringConstants.WEIGHT_VELOCITY)
    new_device: int = Field(..., ge=0, le=ScoringConstants.WEIGHT_NEW_DEVICE)
    soft_total: int = Field(default=0, ge=0, le=ScoringConstants.SOFT_FACTORS_CAP)
    total: int = Field(default=0, ge=0, le=ScoringConstants.TOTAL_CAP)

    model_config = {"frozen": True}

    @model_validator(mode="before")
    @classmethod
    def _aggregate(cls, data):
        if not isinstance(data, dict):
            return data
        soft_sum = sum(
            int(data.get(name, 0))
            for name in ("gps", "typing", "time_of_day", "velocity", "new_device")
        )
        soft_total = min(ScoringConstants.SOFT_FACTORS_CAP, soft_sum)
        data = dict(data)
        data["soft_total"] = soft_total
        data["total"] = min(
            ScoringConstants.TOTAL_CAP,
            int(data.get("failed_attempts", 0)) + soft_total,
        )
        return data

    def as_dict(self) -> Dict[str, int]:
        """Factor name to contribution, including the totals."""
        return {
            "failed_attempts": self.failed_attempts,
            "gps": self.gps,
            "typing": self.typing,
            "time_of_day": self.time_of_day,
            "velocity": self.velocity,
            "new_device": self.new_device,
            "soft_total": self.soft_total,
            "total": self.total,
        }
