"""
Services Module - shared infrastructure services.

- logging_config: structured logging with request/principal context
"""

from .logging_config import configure_logging, get_logger

__all__ = ["configure_logging", "get_logger"]
