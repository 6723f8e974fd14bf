"""User-friendly error messages and safe tool wrapper."""

import logging
import re

from cities_collective.cache.query_cache import CacheKeyError
from cities_collective.storage.resilience import (
    NotFoundError,
    StorageError,
    TransientStorageError,
)

logger = logging.getLogger(__name__)


def get_user_message(error: Exception) -> str:
    """Map an exception to a user-friendly message.

    Args:
        error: The exception to translate.

    Returns:
        A human-readable error message.
    """
    if isinstance(error, NotFoundError):
        return f"{error}."
    if isinstance(error, TransientStorageError):
        return "The database is busy right now. Please try again shortly."
    if isinstance(error, StorageError):
        return "Could not save or load that data. Please check the input and try again."
    if isinstance(error, CacheKeyError):
        return f"Invalid query parameters: {error}"
    if isinstance(error, re.error):
        return f"Invalid pattern: {error}"
    if isinstance(error, ValueError):
        return f"Invalid input: {error}"
    return "Something went wrong. Please try again or contact support."


async def safe_tool_wrapper(
    func,  # type: ignore[no-untyped-def]
    *args: object,
    **kwargs: object,
) -> str:
    """Call an async function, catching errors and returning friendly messages.

    Args:
        func: Async callable to invoke.
        *args: Positional arguments for *func*.
        **kwargs: Keyword arguments for *func*.

    Returns:
        The function's return value on success, or a user-friendly error string.
    """
    try:
        return await func(*args, **kwargs)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Tool error in %s", func.__name__)
        return get_user_message(exc)
