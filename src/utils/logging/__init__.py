"""
Structured logging for the import tooling

Usage:
    from utils.logging import setup_logging, get_logger

    setup_logging(level="INFO", json_format=True)
    logger = get_logger(__name__)
    logger.info("Chunk committed", extra={"table_id": "sales", "chunk_index": 2})
"""

from .config import configure_from_env, get_logger, setup_logging
from .formatters import ConsoleFormatter, JSONFormatter
from .handlers import ContextLogger

__all__ = [
    "setup_logging",
    "get_logger",
    "configure_from_env",
    "JSONFormatter",
    "ConsoleFormatter",
    "ContextLogger",
]
