"""Centralized logging configuration."""

import logging
from typing import Iterable

# Keys passed through ``extra=`` that are worth printing
CONTEXT_KEYS = (
    "request_id",
    "decision_id",
    "principal_id",
    "risk_score",
    "outcome",
    "degraded",
    "backend",
    "entry_id",
)

LOGGER_NAMES = ("riskgate", "riskgate_api")


class ContextFormatter(logging.Formatter):
    """Appends decision context attached via ``extra=`` as key=value pairs."""

    def __init__(self, fmt: str, context_keys: Iterable[str] = CONTEXT_KEYS):
        super().__init__(fmt)
        self.context_keys = tuple(context_keys)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = [
            f"{key}={getattr(record, key)}"
            for key in self.context_keys
            if getattr(record, key, None) is not None
        ]
        if context:
            message = f"{message} [{' '.join(context)}]"
        return message


def get_logger(name: str, level: str = "INFO") -> logging.Logger:
    """Get a configured logger instance."""
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))

    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = ContextFormatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def configure_logging(level: str = "INFO") -> None:
    """Attach handlers to the package and API loggers at the given level."""
    for name in LOGGER_NAMES:
        get_logger(name, level)
