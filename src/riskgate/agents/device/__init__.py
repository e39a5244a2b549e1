"""Device & Location Validator - module init."""

from riskgate.agents.device.validator import (
    DeviceValidator,
    combine_device_risk,
    country_token,
    validate_device,
    validate_location,
)

__all__ = [
    "DeviceValidator",
    "combine_device_risk",
    "country_token",
    "validate_device",
    "validate_location",
]
