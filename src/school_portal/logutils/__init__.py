"""School Portal logging infrastructure.

- Structured JSON logging for production
- Rich console output for development
- Correlation ids and operation context for tracing a repository call
- Masking of credentials, tokens, emails and phone numbers

Usage:
    from school_portal.logutils import get_logger, with_context

    logger = get_logger(__name__)

    with with_context(operation="class.create"):
        logger.info("Created class", extra={"extra_data": {"class_id": class_id}})
"""

from .config import Environment, LogConfig, LogOutput, get_config, reset_config, set_config
from .context import (
    ContextManager,
    LogContext,
    clear_context,
    get_context,
    get_correlation_id,
    set_context,
    set_correlation_id,
    update_context,
    with_context,
)
from .formatters import CompactFormatter, JSONFormatter, StandardFormatter
from .handlers import (
    BufferingHandler,
    RichConsoleHandler,
    SafeRotatingFileHandler,
    StreamHandlerWithFlush,
)
from .logger import LoggerAdapter, configure_root_logger, get_logger, reset_logging, with_extra
from .masking import MASK, SensitiveValue, is_sensitive_key, mask_dict, mask_sensitive_string

__all__ = [
    "get_logger",
    "configure_root_logger",
    "reset_logging",
    "with_extra",
    "LoggerAdapter",
    "with_context",
    "get_context",
    "set_context",
    "clear_context",
    "get_correlation_id",
    "set_correlation_id",
    "update_context",
    "LogContext",
    "ContextManager",
    "LogConfig",
    "LogOutput",
    "Environment",
    "get_config",
    "set_config",
    "reset_config",
    "JSONFormatter",
    "StandardFormatter",
    "CompactFormatter",
    "RichConsoleHandler",
    "SafeRotatingFileHandler",
    "BufferingHandler",
    "StreamHandlerWithFlush",
    "mask_sensitive_string",
    "mask_dict",
    "is_sensitive_key",
    "SensitiveValue",
    "MASK",
]
