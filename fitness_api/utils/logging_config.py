"""
Logging bootstrap
"""
import logging
import os
from typing import Optional


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure the root logger once at application start.

    Args:
        level: Log level name. Falls back to LOG_LEVEL env var, then INFO.
    """
    log_level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
