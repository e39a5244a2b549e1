"""Configuration module - process settings loaded from the environment."""

from riskgate.common.config.settings import (
    AuditStorageType,
    Config,
    Environment,
    FailMode,
    LogLevel,
)

__all__ = [
    "AuditStorageType",
    "Config",
    "Environment",
    "FailMode",
    "LogLevel",
]
