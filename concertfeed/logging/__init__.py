"""Logging for concertfeed."""

from concertfeed.logging.logger import get_logger, log_sync_pair, setup_logging

__all__ = ["get_logger", "log_sync_pair", "setup_logging"]
