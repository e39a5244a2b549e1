"""Configuration management - Process configuration for RiskGate.

Provides environment-aware configuration with sensible defaults.
All configuration is loaded from environment variables with fallbacks.
Risk thresholds live in the policy rules file, not here.
"""

import os
import warnings
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from riskgate.common.constants import TimeoutConstants


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class AuditStorageType(str, Enum):
    """Audit storage backend types."""
    LOCAL = "local"
    MEMORY = "memory"


class FailMode(str, Enum):
    """Behaviour when the policy decision service is unavailable."""
    FAIL_OPEN = "fail_open"
    FAIL_CLOSED = "fail_closed"


def _get_project_root() -> Path:
    """Get the project root directory."""
    # settings.py -> config -> common -> riskgate -> src -> project_root
    return Path(__file__).resolve().parent.parent.parent.parent.parent


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _env_optional_path(name: str) -> Optional[Path]:
    value = os.getenv(name)
    return Path(value) if value else None


@dataclass
class Config:
    """Central configuration object for RiskGate.

    All settings can be overridden via environment variables prefixed with RISKGATE_.

    Example:
        RISKGATE_ENVIRONMENT=production
        RISKGATE_POLICY_FAIL_MODE=fail_closed
        RISKGATE_DECISION_SERVICE_URL=http://opa:8181
    """

    # Core settings
    environment: Environment = field(
        default_factory=lambda: Environment(
            os.getenv("RISKGATE_ENVIRONMENT", "development")
        )
    )
    debug: bool = field(
        default_factory=lambda: os.getenv("RISKGATE_DEBUG", "false").lower() == "true"
    )
    log_level: LogLevel = field(
        default_factory=lambda: LogLevel(os.getenv("RISKGATE_LOG_LEVEL", "INFO").upper())
    )

    # Paths
    project_root: Path = field(default_factory=_get_project_root)
    policy_rules_file: Optional[Path] = field(
        default_factory=lambda: _env_optional_path("RISKGATE_POLICY_RULES_FILE")
    )

    principals_file: Optional[Path] = field(
        default_factory=lambda: _env_optional_path("RISKGATE_PRINCIPALS_FILE")
    )

    # Audit settings
    audit_storage_type: AuditStorageType = field(
        default_factory=lambda: AuditStorageType(
            os.getenv("RISKGATE_AUDIT_STORAGE_TYPE", "local")
        )
    )
    audit_log_dir: Path = field(
        default_factory=lambda: Path(
            os.getenv("RISKGATE_AUDIT_LOG_DIR", "./logs/audit")
        )
    )
    use_background_audit: bool = field(
        default_factory=lambda: os.getenv(
            "RISKGATE_USE_BACKGROUND_AUDIT", "true"
        ).lower() == "true"
    )

    # Policy decision service
    decision_service_url: Optional[str] = field(
        default_factory=lambda: os.getenv("RISKGATE_DECISION_SERVICE_URL")
    )
    decision_package: str = field(
        default_factory=lambda: os.getenv("RISKGATE_DECISION_PACKAGE", "accesscontrol")
    )
    decision_timeout_seconds: float = field(
        default_factory=lambda: _env_float(
            "RISKGATE_DECISION_TIMEOUT_SECONDS", TimeoutConstants.POLICY_DECISION_SECONDS
        )
    )
    policy_fail_mode: Optional[FailMode] = field(
        default_factory=lambda: (
            FailMode(os.environ["RISKGATE_POLICY_FAIL_MODE"])
            if os.getenv("RISKGATE_POLICY_FAIL_MODE") else None
        )
    )

    health_check_interval_seconds: Optional[float] = field(
        default_factory=lambda: (
            float(os.environ["RISKGATE_HEALTH_CHECK_INTERVAL_SECONDS"])
            if os.getenv("RISKGATE_HEALTH_CHECK_INTERVAL_SECONDS") else None
        )
    )

    # Other collaborators
    identity_store_timeout_seconds: float = field(
        default_factory=lambda: _env_float(
            "RISKGATE_IDENTITY_STORE_TIMEOUT_SECONDS", TimeoutConstants.IDENTITY_STORE_SECONDS
        )
    )
    geolocation_url: Optional[str] = field(
        default_factory=lambda: os.getenv("RISKGATE_GEOLOCATION_URL")
    )
    geolocation_timeout_seconds: float = field(
        default_factory=lambda: _env_float(
            "RISKGATE_GEOLOCATION_TIMEOUT_SECONDS", TimeoutConstants.GEOLOCATION_SECONDS
        )
    )

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.decision_timeout_seconds <= 0:
            raise ValueError("RISKGATE_DECISION_TIMEOUT_SECONDS must be positive")
        if self.identity_store_timeout_seconds <= 0:
            raise ValueError("RISKGATE_IDENTITY_STORE_TIMEOUT_SECONDS must be positive")

        if self.environment == Environment.PRODUCTION and self.debug:
            warnings.warn(
                "Debug mode is enabled in production environment",
                RuntimeWarning,
                stacklevel=2
            )
        if (
            self.environment == Environment.PRODUCTION
            and self.policy_fail_mode == FailMode.FAIL_OPEN
        ):
            warnings.warn(
                "Policy decisions fail open in production environment",
                RuntimeWarning,
                stacklevel=2
            )

    @property
    def config_dir(self) -> Path:
        """Get the config directory path."""
        return self.project_root / "config"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION
