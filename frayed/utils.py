"""
Shared helpers for the frayed package: exceptions, the exclusive-borrow
cell guarding engine state, logging setup and memory measurement.
"""

import gc
import logging
import sys
import time
import tracemalloc
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from .models import get_settings


# ---------- Exceptions ----------

class FrayedError(Exception):
    """Base exception for all errors raised by this library."""
    pass


class ContractViolationError(FrayedError):
    """Raised when a caller or producer breaks the grouping contract."""
    pass


class ReentrancyError(FrayedError, RuntimeError):
    """Raised when engine state is borrowed while already borrowed."""
    pass


class InvariantError(FrayedError):
    """Raised when an internal bookkeeping check fails."""
    pass


# ---------- Logging Setup ----------

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(funcName)s:%(lineno)d] - %(message)s'


def setup_logging(level: Optional[Union[int, str]] = None) -> logging.Logger:
    """Attach a stdout handler to the package logger and return it.

    Without a level, FRAYED_LOG_LEVEL (via get_settings) decides.
    """
    logger = logging.getLogger('frayed')
    if level is None:
        level = get_settings().log_level
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logger.setLevel(level)

    if not any(getattr(h, '_frayed_handler', False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._frayed_handler = True
        logger.addHandler(handler)

    return logger


# ---------- Exclusive Borrow ----------

class ExclusiveCell:
    """
    Holds a value that may only be mutably borrowed by one caller at a time.

    Single-threaded by design: the flag catches re-entrant access (a producer
    calling back into the engine that is currently pulling from it), not
    cross-thread races.
    """

    def __init__(self, value: Any):
        self._value = value
        self._borrowed = False

    @property
    def borrowed(self) -> bool:
        return self._borrowed

    @contextmanager
    def borrow_mut(self):
        if self._borrowed:
            raise ReentrancyError("Engine state is already borrowed (re-entrant access)")
        self._borrowed = True
        try:
            yield self._value
        finally:
            self._borrowed = False

    def borrow(self) -> Any:
        """Shared read access; refused while a mutable borrow is held"""
        if self._borrowed:
            raise ReentrancyError("Engine state is mutably borrowed")
        return self._value

    def into_inner(self) -> Any:
        if self._borrowed:
            raise ReentrancyError("Cannot take the value out while it is borrowed")
        return self._value


# ---------- Memory Measurement ----------

@dataclass
class MemoryReport:
    """Outcome of a measured call"""
    result: Any
    peak_bytes: int
    execution_time_ms: float

    @property
    def peak_mb(self) -> float:
        return self.peak_bytes / 1024 / 1024


def measure_memory(func: Callable[..., Any], *args, **kwargs) -> MemoryReport:
    """Run func under tracemalloc and report its peak allocation"""
    already_tracing = tracemalloc.is_tracing()
    if not already_tracing:
        tracemalloc.start()
    gc.collect()
    tracemalloc.reset_peak()
    baseline, _ = tracemalloc.get_traced_memory()

    start_time = time.perf_counter()
    try:
        result = func(*args, **kwargs)
        end_time = time.perf_counter()
        _, peak = tracemalloc.get_traced_memory()
    finally:
        if not already_tracing:
            tracemalloc.stop()

    return MemoryReport(
        result=result,
        peak_bytes=max(peak - baseline, 0),
        execution_time_ms=(end_time - start_time) * 1000,
    )


def describe_index(index: Optional[int]) -> str:
    """Render a group index that may be unset"""
    return "none" if index is None else str(index)
