"""
Logging for the batch queue.

Every module logs through a ``QueueLogger``: a stdlib logger writing one line
per event, with keyword context rendered after the message as
``| key=value`` pairs so request keys and indexes stay greppable.
"""

import logging
import sys
from typing import Any, Dict, Optional, TextIO

_RESET = "\033[0m"

# ANSI colour per level name
LEVEL_COLORS: Dict[str, str] = {
    "DEBUG": "\033[95m",
    "INFO": "\033[94m",
    "WARNING": "\033[93m",
    "ERROR": "\033[91m",
    "CRITICAL": "\033[95m",
}


class ColorFormatter(logging.Formatter):
    """
    Formats ``LEVEL: message`` lines, optionally prefixed by a timestamp.
    The level name is coloured when writing to a terminal.
    """

    def __init__(self, use_colors: bool = True, include_timestamp: bool = True):
        fmt = "%(levelname)s: %(message)s"
        if include_timestamp:
            fmt = "%(asctime)s " + fmt
        super().__init__(fmt, datefmt="%Y-%m-%d %H:%M:%S")

        self.use_colors = use_colors and sys.stdout.isatty()
        self.include_timestamp = include_timestamp

    def formatMessage(self, record: logging.LogRecord) -> str:
        color = LEVEL_COLORS.get(record.levelname) if self.use_colors else None
        if color is None:
            return super().formatMessage(record)

        plain_level = record.levelname
        record.levelname = f"{color}{plain_level}{_RESET}"
        try:
            return super().formatMessage(record)
        finally:
            record.levelname = plain_level


def format_context(message: str, context: Dict[str, Any]) -> str:
    """Append ``| key=value`` pairs to a message, in keyword order."""
    if not context:
        return message
    pairs = " ".join(f"{name}={value}" for name, value in context.items())
    return f"{message} | {pairs}"


class QueueLogger:
    """
    Thin wrapper around a named stdlib logger.

    Creating a QueueLogger (re)configures the named logger with a single
    stream handler and stops propagation to the root logger.
    """

    def __init__(
        self,
        name: str = "batchqueue",
        level: int = logging.INFO,
        use_colors: bool = True,
        stream: Optional[TextIO] = None,
    ):
        """
        :param name: Name of the underlying stdlib logger.
        :param level: Initial level.
        :param use_colors: Colour level names on a terminal.
        :param stream: Output stream, stdout if None.
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)
        self.logger.propagate = False

        handler = logging.StreamHandler(stream or sys.stdout)
        handler.setFormatter(ColorFormatter(use_colors=use_colors))
        self.logger.handlers = [handler]

    def log_with_context(self, level: int, message: str, **context: Any) -> None:
        if self.logger.isEnabledFor(level):
            self.logger.log(level, format_context(message, context))

    def debug(self, message: str, **context: Any) -> None:
        self.log_with_context(logging.DEBUG, message, **context)

    def info(self, message: str, **context: Any) -> None:
        self.log_with_context(logging.INFO, message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self.log_with_context(logging.WARNING, message, **context)

    def error(
        self, message: str, error: Optional[BaseException] = None, **context: Any
    ) -> None:
        """Log an error; the exception text, if given, follows the message."""
        if error is not None:
            message = f"{message}: {error}"
        self.log_with_context(logging.ERROR, message, **context)

    def set_level(self, level: int) -> None:
        self.logger.setLevel(level)


_current: Optional[QueueLogger] = None


def get_logger(name: str = "batchqueue") -> QueueLogger:
    """
    Return the QueueLogger for ``name``.
    The last logger handed out is cached and reused for repeated names.
    """
    global _current
    if _current is None or _current.logger.name != name:
        _current = QueueLogger(name)
    return _current


def setup_logging(
    level: int = logging.INFO, use_colors: bool = True, name: str = "batchqueue"
) -> QueueLogger:
    """
    Configure the named logger and make it the cached one.

    :returns: The configured QueueLogger.
    """
    global _current
    _current = QueueLogger(name, level, use_colors)
    return _current
