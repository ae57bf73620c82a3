"""
Performance monitoring utilities.
"""

import time
import asyncio
from functools import wraps
from typing import Callable, Optional
import structlog

logger = structlog.get_logger()


def _log_outcome(name: str, start_time: float, error: Optional[Exception] = None) -> None:
    duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
    if error is None:
        logger.info(
            "operation_complete",
            operation=name,
            duration_ms=duration_ms,
            status="success"
        )
    else:
        logger.error(
            "operation_failed",
            operation=name,
            duration_ms=duration_ms,
            status="error",
            error_type=type(error).__name__,
            error=str(error)
        )


def log_execution_time(operation_name: str = None):
    """
    Decorator to log execution time of pipeline steps.

    Failures are logged and re-raised unchanged.

    Usage:
        @log_execution_time("fetch_document")
        async def _fetch_document_node(self, state):
            ...
    """
    def decorator(func: Callable):
        name = operation_name or func.__name__

        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                _log_outcome(name, start_time, e)
                raise
            _log_outcome(name, start_time)
            return result

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _log_outcome(name, start_time, e)
                raise
            _log_outcome(name, start_time)
            return result

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator
