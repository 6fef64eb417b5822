"""
Observability module.

Provides logging configuration, structured logging helpers, correlation
IDs and HTTP middleware.
"""

from deltasearch.observability.correlation import (
    clear_correlation_id,
    get_correlation_id,
    set_correlation_id,
)
from deltasearch.observability.logger import configure_logging, get_logger
from deltasearch.observability.log_utils import (
    log_exception_with_context,
    log_with_context,
    safe_log_value,
)

__all__ = [
    "clear_correlation_id",
    "configure_logging",
    "get_correlation_id",
    "get_logger",
    "log_exception_with_context",
    "log_with_context",
    "safe_log_value",
    "set_correlation_id",
]
