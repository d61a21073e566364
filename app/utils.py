"""
Shared helpers used across features.
"""
import logging

from app.core import config


logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


def get_logger(name: str) -> logging.Logger:
    """Return a module logger configured with the service log level."""
    return logging.getLogger(name)
