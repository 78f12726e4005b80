"""
Error Handling Decorators

Provides decorators for consistent error handling across the App Store.
``retry`` and ``timed`` accept both plain functions and coroutine functions.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
import time
from typing import Type, Tuple, Callable, Any, Optional

logger = logging.getLogger(__name__)


def handle_errors(
    *exception_types: Type[Exception],
    default: Any = None,
    log_level: int = logging.ERROR,
    reraise: bool = False,
    message: Optional[str] = None,
):
    """
    Decorator to handle exceptions consistently.

    Args:
        exception_types: Exception types to catch (default: Exception)
        default: Value to return on error
        log_level: Logging level for errors
        reraise: Whether to re-raise after logging
        message: Custom error message prefix

    Example:
        @handle_errors(PersistenceError, default=False, log_level=logging.WARNING)
        def persist(self):
            ...
    """
    if not exception_types:
        exception_types = (Exception,)

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except exception_types as e:
                prefix = message or f"{func.__name__} failed"
                logger.log(
                    log_level,
                    f"{prefix}: {e}",
                    exc_info=log_level >= logging.ERROR,
                )
                if reraise:
                    raise
                return default
        return wrapper
    return decorator


def retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable[[Exception, int], None]] = None,
):
    """
    Decorator to retry failed operations with exponential backoff.

    Coroutine functions are awaited and back off with ``asyncio.sleep``
    so the event loop keeps serving other work.

    Args:
        max_attempts: Maximum number of attempts
        delay: Initial delay between retries (seconds)
        backoff: Multiplier for delay after each retry
        exceptions: Exception types to catch and retry
        on_retry: Callback called on each retry with (exception, attempt)

    Example:
        @retry(max_attempts=3, delay=0.5, exceptions=(httpx.TransportError,))
        async def fetch_page(client, url):
            ...
    """
    def _log_retry(func: Callable, e: Exception, attempt: int) -> None:
        logger.warning(
            f"{func.__name__} failed (attempt {attempt}/{max_attempts}): {e}"
        )
        if on_retry:
            on_retry(e, attempt)

    def decorator(func: Callable) -> Callable:
        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                last_exception = None
                current_delay = delay

                for attempt in range(max_attempts):
                    try:
                        return await func(*args, **kwargs)
                    except exceptions as e:
                        last_exception = e
                        if attempt < max_attempts - 1:
                            _log_retry(func, e, attempt + 1)
                            await asyncio.sleep(current_delay)
                            current_delay *= backoff

                logger.error(
                    f"{func.__name__} failed after {max_attempts} attempts: {last_exception}"
                )
                raise last_exception

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            last_exception = None
            current_delay = delay

            for attempt in range(max_attempts):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e
                    if attempt < max_attempts - 1:
                        _log_retry(func, e, attempt + 1)
                        time.sleep(current_delay)
                        current_delay *= backoff

            # All attempts exhausted
            logger.error(
                f"{func.__name__} failed after {max_attempts} attempts: {last_exception}"
            )
            raise last_exception

        return wrapper
    return decorator


def timed(func: Callable) -> Callable:
    """
    Decorator to log function execution time.
    """
    if inspect.iscoroutinefunction(func):
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                return await func(*args, **kwargs)
            finally:
                elapsed = time.perf_counter() - start
                logger.debug(f"{func.__name__} completed in {elapsed:.3f}s")
        return async_wrapper

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            elapsed = time.perf_counter() - start
            logger.debug(f"{func.__name__} completed in {elapsed:.3f}s")
    return wrapper
