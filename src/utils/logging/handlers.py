"""
Logger wrapper that carries per-session context.

An import session logs with the same table id and session id on every
line; ContextLogger binds them once instead of repeating ``extra=`` at each
call site.
"""

import logging
from typing import Any


class ContextLogger:
    """
    Logger wrapper that adds bound context to every log message

    Usage:
        logger = ContextLogger(__name__, table_id="sales", session_id="a1b2")
        logger.info("Chunk committed", chunk_index=3)
    """

    def __init__(self, name: str, **context):
        self.logger = logging.getLogger(name)
        self.context = context

    def _log(self, level: int, msg: str, *args, exc_info=None, **kwargs) -> None:
        if not self.logger.isEnabledFor(level):
            return
        extra = {**self.context, **kwargs}
        self.logger.log(level, msg, *args, exc_info=exc_info, extra=extra, stacklevel=3)

    def debug(self, msg: str, *args, **kwargs) -> None:
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs) -> None:
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs) -> None:
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, exc_info=None, **kwargs) -> None:
        self._log(logging.ERROR, msg, *args, exc_info=exc_info, **kwargs)

    def bind(self, **context) -> "ContextLogger":
        """
        Create a child logger with additional context

        Args:
            **context: Key-value pairs layered over the current context

        Returns:
            New ContextLogger sharing the underlying logger
        """
        return ContextLogger(self.logger.name, **{**self.context, **context})

    def update_context(self, **context) -> None:
        self.context.update(context)

    def get_context(self) -> dict[str, Any]:
        return self.context.copy()
