"""
Logging setup for the waterfall pipeline.

Every module logs through a child of the "gtn_waterfall" logger. Console output
is INFO; setting GTN_WATERFALL_LOG_FILE adds a DEBUG file with call traces from
@debug_watcher.
"""

import functools
import logging
import os
import traceback
from pathlib import Path
from time import perf_counter
from typing import Any, Callable, TypeVar

import pandas as pd

F = TypeVar("F", bound=Callable[..., Any])

PACKAGE_LOGGER = "gtn_waterfall"
LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(module)s]: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_ENV = "GTN_WATERFALL_LOG_FILE"


def configure_logging(log_file: str | Path | None = None, console_level: int = logging.INFO) -> logging.Logger:
    """
    Attach console and optional file handlers to the package logger.

    Calling it again is a no-op once handlers exist.
    """
    root = logging.getLogger(PACKAGE_LOGGER)
    root.setLevel(logging.DEBUG)
    if root.handlers:
        return root

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    console = logging.StreamHandler()
    console.setLevel(console_level)
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        trace = logging.FileHandler(path, mode="a", encoding="utf-8")
        trace.setLevel(logging.DEBUG)
        trace.setFormatter(formatter)
        root.addHandler(trace)

    return root


_logger = configure_logging(os.environ.get(LOG_FILE_ENV))


def get_logger(name: str | None = None) -> logging.Logger:
    """Child logger named after the last component of `name`, or the package logger."""
    if not name:
        return _logger
    return _logger.getChild(name.rsplit(".", 1)[-1])


def describe(value: Any) -> str:
    """Short description of a pipeline value for trace lines."""
    if isinstance(value, pd.DataFrame):
        return f"<DataFrame {value.shape[0]}x{value.shape[1]}>"
    if isinstance(value, (list, tuple)):
        return f"<{len(value)} {type(value).__name__} items>"
    if isinstance(value, Path):
        return value.name
    rows = getattr(value, "rows", None)
    if isinstance(rows, list):
        return f"<{type(value).__name__} with {len(rows)} rows>"
    if hasattr(value, "row_count"):
        return f"<{type(value).__name__} over {value.row_count} rows>"
    text = repr(value)
    return text if len(text) <= 60 else text[:57] + "..."


def debug_watcher(func: F) -> F:
    """
    Trace a pipeline stage: inputs, result and duration at DEBUG, failures at ERROR.

    Exceptions are logged with their traceback and re-raised unchanged.
    """
    logger = get_logger(func.__module__)
    name = func.__name__

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        inputs = [describe(a) for a in args] + [f"{k}={describe(v)}" for k, v in kwargs.items()]
        logger.debug(f"{name}({', '.join(inputs)})")
        started = perf_counter()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            logger.error(f"Exception in {name} after {perf_counter() - started:.3f}s: {type(e).__name__}: {e}")
            logger.debug(traceback.format_exc())
            raise
        logger.debug(f"{name} -> {describe(result)} in {perf_counter() - started:.3f}s")
        return result

    return wrapper  # type: ignore[return-value]
