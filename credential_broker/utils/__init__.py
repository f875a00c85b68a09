"""Utility modules for the credential broker."""

from .json_utils import loads_lenient, repair_json_text
from .logger import ContextAwareLogger, configure_logging, get_logger, reset_logging
from .retry_utils import calculate_exponential_backoff, classify_failure

__all__ = [
    # JSON helpers
    "loads_lenient",
    "repair_json_text",
    # Logging utilities
    "ContextAwareLogger",
    "configure_logging",
    "get_logger",
    "reset_logging",
    # Retry helpers
    "calculate_exponential_backoff",
    "classify_failure",
]
