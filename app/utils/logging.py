"""Logging configuration."""
import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Configure the application logger.

    Installs a single stdout handler on the ``app`` logger. Calling it again
    only updates the level.

    Args:
        level: Level name (DEBUG, INFO, WARNING, ERROR)

    Returns:
        The configured ``app`` logger
    """
    app_logger = logging.getLogger("app")
    app_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not app_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        app_logger.addHandler(handler)

    return app_logger
