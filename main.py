#!/usr/bin/env python3
"""Main entry point for RiskGate."""

import uvicorn

from riskgate.common.config import Config
from riskgate.common.logging import configure_logging, get_logger

logger = get_logger(__name__)


def main():
    """Serve the API gateway."""
    config = Config()
    configure_logging(config.log_level.value)
    logger.info(f"RiskGate starting in {config.environment.value} mode")
    logger.info(f"Project root: {config.project_root}")
    uvicorn.run(
        "riskgate.api.gateway:app",
        host="0.0.0.0",
        port=8000,
        log_level=config.log_level.value.lower(),
    )


if __name__ == "__main__":
    main()
