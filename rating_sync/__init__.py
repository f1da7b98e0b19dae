"""Incremental Elo ratings, score predictions, line tracking and backtests."""

import os

from .logging_config import configure_logging

# Import-time defaults; the CLI reapplies them from Settings.
configure_logging(
    log_level=os.getenv("LOG_LEVEL", "INFO"),
    json_logs=os.getenv("JSON_LOGS", "true").lower() in ("1", "true", "yes"),
    service_name=os.getenv("SERVICE_NAME", "rating-sync"),
)

__version__ = "1.0.0"
