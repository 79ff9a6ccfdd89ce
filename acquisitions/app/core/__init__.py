"""Core utilities for the API."""

from acquisitions.app.core.config import settings
from acquisitions.app.core.logging import get_logger, setup_logging

__all__ = [
    "settings",
    "get_logger",
    "setup_logging",
]
