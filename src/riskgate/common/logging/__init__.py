"""Logging helpers."""

from riskgate.common.logging.logger import ContextFormatter, configure_logging, get_logger

__all__ = ["ContextFormatter", "configure_logging", "get_logger"]
