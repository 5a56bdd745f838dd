"""
Structured logging module.

Provides JSON file logging and a human-readable console format, with
stage/batch context propagated through contextvars so concurrently
running workers keep their own log context.

Import directly from sub-modules:
    from bundle_core.logging.setup import get_logger, setup_logging
    from bundle_core.logging.context import set_log_context
    from bundle_core.logging.utilities import log_with_context, log_exception
"""
