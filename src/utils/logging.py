import functools
import logging
import os
import time
from typing import Any, Callable, TypeVar

import numpy as np
import pandas as pd

# Default to CRITICAL (effectively off) unless explicitly set for debug
LOG_LEVEL = os.getenv("MARKOV_BENCH_LOG_LEVEL", "CRITICAL").upper()
logging.basicConfig(level=getattr(logging, LOG_LEVEL, logging.CRITICAL))

F = TypeVar("F", bound=Callable[..., Any])


def _summarize(value: Any) -> str:
    """Short description of a value: shapes for arrays and frames."""
    if isinstance(value, (np.ndarray, pd.DataFrame, pd.Series)):
        return f"{type(value).__name__}{value.shape}"
    if isinstance(value, (int, float, str, bool)) or value is None:
        return repr(value)
    return type(value).__name__


def log_call(func: F) -> F:
    """Decorator that logs function entry, exit and runtime at DEBUG level."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        logger = logging.getLogger(func.__module__)
        log_debug = logger.isEnabledFor(logging.DEBUG)
        if log_debug:
            logger.debug("Entering %s", func.__qualname__)
            logger.debug(
                "args=%s kwargs=%s",
                [_summarize(a) for a in args],
                {k: _summarize(v) for k, v in kwargs.items()},
            )
        start = time.perf_counter()
        result = func(*args, **kwargs)
        runtime_ms = (time.perf_counter() - start) * 1000.0
        if log_debug:
            logger.debug("return=%s", _summarize(result))
            logger.debug("Exiting %s (%.2fms)", func.__qualname__, runtime_ms)
        return result

    return wrapper  # type: ignore[return-value]
