"""Logging utilities for antpulse."""
import logging
import sys
import os
import threading
from typing import Optional


# Handler installation happens from both the poller thread and the main thread
_logger_init_lock = threading.Lock()

LOG_LEVEL_ENV = "ANTPULSE_LOG_LEVEL"
MAIN_THREAD_NAME = "MainThread"


class PulseFormatter(logging.Formatter):
    """Compact formatter for antpulse logs.

    Format: [{level[0]} {time} {module_basename[:9]}] {message}
    Records from any thread other than the main one (the sensor poller,
    executor workers) carry the thread name after the module:

        [W 14:23:45.123 decoder  @SensorPoller] Skipped 1 beat(s): count 17 -> 19
        [I 14:23:45.130 output   ] Heart rate: 71 BPM (mode: intra-beat)
    """

    def format(self, record):
        level_char = record.levelname[0]
        module_padded = record.name.split('.')[-1][:9].ljust(9)
        timestamp = self.formatTime(record, "%H:%M:%S")

        thread_tag = ""
        if record.threadName and record.threadName != MAIN_THREAD_NAME:
            thread_tag = f"@{record.threadName}"

        prefix = f"[{level_char} {timestamp}.{record.msecs:03.0f} {module_padded}{thread_tag}]"
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"

        return f"{prefix} {message}"


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Get logger for an antpulse component.

    Args:
        name: Component name (usually __name__)
        level: Optional level (DEBUG/INFO/WARNING/ERROR)
               Falls back to ANTPULSE_LOG_LEVEL env var, then INFO

    Returns:
        Configured logger instance

    Example:
        >>> from antpulse.log import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.info("Opening heart rate monitor channel")
        [I 14:23:45.123 poller   ] Opening heart rate monitor channel
    """
    logger = logging.getLogger(name)

    if level is None:
        level = os.getenv(LOG_LEVEL_ENV, "INFO")

    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    with _logger_init_lock:
        if not logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(PulseFormatter())
            logger.addHandler(handler)

    return logger


def set_level(level: str) -> None:
    """Apply a level to every antpulse logger created so far."""
    value = getattr(logging, level.upper(), logging.INFO)
    for name, candidate in list(logging.Logger.manager.loggerDict.items()):
        if name.startswith("antpulse") and isinstance(candidate, logging.Logger):
            candidate.setLevel(value)
