"""
Performance timing utilities for debugging.

This module provides a decorator that logs the execution time of discovery,
loading and routing when the PROTOKOLL_DEBUG environment variable is set.
"""

import functools
import logging
import os
import time
from typing import Callable, ParamSpec, TypeVar

P = ParamSpec("P")
R = TypeVar("R")

logger = logging.getLogger(__name__)


def timer(func: Callable[P, R]) -> Callable[P, R]:
    """
    Decorator that logs elapsed time when PROTOKOLL_DEBUG=1.

    The flag is read on every call so that the CLI can switch it on after import.
    """

    @functools.wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        if os.getenv("PROTOKOLL_DEBUG") != "1":
            return func(*args, **kwargs)

        start_time = time.perf_counter()
        result = func(*args, **kwargs)
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.debug(f"{func.__qualname__}: {elapsed_ms:.2f}ms")
        return result

    return wrapper
