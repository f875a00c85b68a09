"""
Logging helpers for the credential broker.

Console logs go through ContextAwareLogger, which renders ``extra`` fields as
pipe-delimited ``key=value`` pairs while still attaching them to the record.
"""

import logging
import sys
from typing import Optional, Union

from ..config import get_config

_broker_logger = None


class ContextAwareLogger:
    """
    Logger wrapper that formats extra attributes in message while preserving them.

    This keeps extras visible in console output even when the host process
    installs its own formatters.
    """

    def __init__(self, logger):
        """Initialize with an existing logger."""
        self.logger = logger

    def _log_with_formatted_extra(self, level, msg, **kwargs):
        """
        Log with extra data formatted into the message.

        Args:
            level: Logging level method to use
            msg: Log message
            **kwargs: Additional arguments including 'extra' and 'exc_info'
        """
        extra = kwargs.pop("extra", {})

        if extra:
            extra_str = " | ".join([f"{k}={v}" for k, v in extra.items()])
            full_msg = f"{msg} | {extra_str}"
        else:
            full_msg = msg

        log_method = getattr(self.logger, level)
        log_method(full_msg, extra=extra, exc_info=kwargs.get("exc_info"))

    def set_level(self, level):
        """Set the logging level of the underlying logger."""
        self.logger.setLevel(level)

    def info(self, msg, **kwargs):
        """Log at INFO level with formatted extra."""
        self._log_with_formatted_extra("info", msg, **kwargs)

    def error(self, msg, **kwargs):
        """Log at ERROR level with formatted extra."""
        self._log_with_formatted_extra("error", msg, **kwargs)

    def warning(self, msg, **kwargs):
        """Log at WARNING level with formatted extra."""
        self._log_with_formatted_extra("warning", msg, **kwargs)

    def debug(self, msg, **kwargs):
        """Log at DEBUG level with formatted extra."""
        self._log_with_formatted_extra("debug", msg, **kwargs)

    def exception(self, msg, **kwargs):
        """Log exception with formatted extra."""
        kwargs.setdefault("exc_info", True)
        self._log_with_formatted_extra("error", msg, **kwargs)


def configure_logging(
    component_name: str,
    log_level: Optional[Union[int, str]] = None,
) -> ContextAwareLogger:
    """
    Configure console logging for a broker component.

    Args:
        component_name: Name used for the ``credential_broker.<name>`` logger
        log_level: Logging level (default: from config.logging.level)

    Returns:
        The configured logger wrapped with ContextAwareLogger
    """
    global _broker_logger

    app_config = get_config()

    if log_level is None:
        log_level = app_config.logging.level

    if isinstance(log_level, str):
        log_level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(f"credential_broker.{component_name}")
    logger.setLevel(log_level)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(app_config.logging.format))
    logger.addHandler(console_handler)

    wrapped_logger = ContextAwareLogger(logger)
    wrapped_logger.info(
        "Broker logger configured",
        extra={"component": component_name, "level": logging.getLevelName(log_level)},
    )
    _broker_logger = wrapped_logger
    return wrapped_logger


def get_logger(
    log_level: Optional[Union[int, str]] = None,
) -> ContextAwareLogger:
    """
    Get the broker logger.

    Returns the logger installed by configure_logging, or a wrapper around the
    ``credential_broker`` logger when none has been configured.
    """
    if _broker_logger is not None:
        return _broker_logger

    logger = logging.getLogger("credential_broker")

    if log_level is None:
        log_level = get_config().logging.level

    if isinstance(log_level, str):
        log_level = getattr(logging, log_level.upper(), logging.INFO)
    logger.setLevel(log_level)

    return ContextAwareLogger(logger)


def reset_logging() -> None:
    """Forget the logger installed by configure_logging."""
    global _broker_logger
    _broker_logger = None
