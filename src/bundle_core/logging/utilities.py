"""Helpers for attaching structured fields to log records."""

import logging
from typing import Any, Dict

# Longest exception text copied into error_message
MAX_ERROR_MESSAGE = 500


def log_with_context(
    logger: logging.Logger,
    level: int,
    msg: str,
    **kwargs: Any,
) -> None:
    """
    Log ``msg`` with keyword arguments as record attributes.

    JSONFormatter writes out the attributes it knows (url, shard_path,
    image_count, ...); the console and plain file formats ignore them.

        log_with_context(logger, logging.INFO, "Merged shard",
                         shard_path=path, image_count=12)
    """
    logger.log(level, msg, extra=kwargs)


def _error_fields(exc: BaseException, fields: Dict[str, Any]) -> Dict[str, Any]:
    category = getattr(exc, "category", None)
    if fields.get("error_category") is None and category is not None:
        fields["error_category"] = getattr(category, "value", str(category))

    text = str(exc)
    if len(text) > MAX_ERROR_MESSAGE:
        text = text[:MAX_ERROR_MESSAGE] + "..."
    fields["error_message"] = text
    return fields


def log_exception(
    logger: logging.Logger,
    exc: BaseException,
    msg: str,
    level: int = logging.ERROR,
    include_traceback: bool = True,
    **kwargs: Any,
) -> None:
    """
    Log a caught exception with its category and a truncated message.

    Args:
        logger: Logger to write to
        exc: The caught exception
        msg: What was being attempted
        level: Record level (default: ERROR)
        include_traceback: Attach exc as exc_info
        **kwargs: Extra record attributes; an explicit error_category wins
            over the exception's own
    """
    logger.log(
        level,
        msg,
        exc_info=exc if include_traceback else None,
        extra=_error_fields(exc, kwargs),
    )
