"""
Core Module - Logging Setup.

============================================================
RESPONSIBILITY
============================================================
Configures the root logger once at startup.

- json: one JSON object per line (log shippers)
- text: human-readable pipe-separated lines
- Optional dedicated alert log file for the logfile channel

============================================================
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional


ALERT_LOGGER_NAME = "daasr.alerts"


# ============================================================
# LOGGING SETUP
# ============================================================

def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    alert_log_file: Optional[str] = None,
) -> logging.Logger:
    """
    Set up structured logging.

    Args:
        level: Log level
        log_format: Output format (json or text)
        alert_log_file: Optional file receiving alert notifications

    Returns:
        The engine logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
            })
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    if alert_log_file:
        attach_alert_log_file(alert_log_file, formatter)

    return logging.getLogger("daasr")


def attach_alert_log_file(
    path: str,
    formatter: Optional[logging.Formatter] = None,
) -> logging.Handler:
    """Route the alert logger to a file, creating its directory."""
    log_path = Path(path)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(log_path)
    file_handler.setFormatter(
        formatter or logging.Formatter("%(asctime)s | %(levelname)-8s | %(message)s")
    )

    alert_logger = logging.getLogger(ALERT_LOGGER_NAME)
    alert_logger.addHandler(file_handler)
    return file_handler
