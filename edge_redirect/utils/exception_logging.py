"""
Exception logging helpers for the edge handler.

The handler must always answer with its fixed 500 page, so nothing here is
allowed to raise, even for exceptions whose ``__str__`` is broken.
"""

import logging


def _safe_str(obj) -> str:
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} (string conversion failed)>"


def _sub_exceptions(exception) -> list:
    try:
        return list(getattr(exception, "exceptions", None) or [])
    except Exception:
        return []


def format_exception_message(exception) -> str:
    """
    Describe an exception, listing the members of an exception group.

    Args:
        exception: The exception to format

    Returns:
        ``"message"`` or ``"message (Sub-exceptions: Type: msg; ...)"``
    """
    if exception is None:
        return "None"
    message = _safe_str(exception)
    subs = _sub_exceptions(exception)
    if not subs:
        return message
    parts = [f"{type(sub).__name__}: {_safe_str(sub)}" for sub in subs]
    return f"{message} (Sub-exceptions: {'; '.join(parts)})"


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception with its traceback; exception groups get one entry per member.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[EdgeHandler]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    try:
        prefix = _safe_str(prefix) if prefix is not None else ""
        subs = _sub_exceptions(exception)
        if not subs:
            logger.log(
                level,
                f"{prefix} Exception: {_safe_str(exception)}",
                exc_info=exception if isinstance(exception, BaseException) else False,
            )
            return

        logger.log(
            level,
            f"{prefix} Exception with {len(subs)} sub-exceptions: {_safe_str(exception)}",
        )
        for i, sub in enumerate(subs, start=1):
            logger.log(
                level,
                f"{prefix} Sub-exception {i}: {type(sub).__name__}: {_safe_str(sub)}",
                exc_info=sub if isinstance(sub, BaseException) else False,
            )
    except Exception:
        try:
            logger.log(logging.ERROR, "Exception logging failed")
        except Exception:
            pass
