"""
Timing helpers for forward passes.

``time_operation`` wraps a block, measures it with a ``Timer`` and logs the
duration at debug level. The model runner wraps every backend call with it.
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional

from ..logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TimingResult:
    """Outcome of one timed block."""

    operation: str
    duration_seconds: float
    success: bool = True
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def duration_ms(self) -> float:
        return self.duration_seconds * 1e3

    @property
    def duration_us(self) -> float:
        return self.duration_seconds * 1e6


class Timer:
    """Single-use ``perf_counter`` stopwatch."""

    def __init__(self, operation: str, metadata: Optional[Dict[str, Any]] = None):
        self.operation = operation
        self.metadata = dict(metadata or {})
        self.success = True
        self.result: Optional[TimingResult] = None
        self._started: Optional[float] = None

    @property
    def running(self) -> bool:
        return self._started is not None and self.result is None

    def start(self) -> "Timer":
        self._started = time.perf_counter()
        return self

    def stop(self) -> TimingResult:
        if self._started is None:
            raise ValueError("Timer not started")

        elapsed = time.perf_counter() - self._started
        self.result = TimingResult(self.operation, elapsed, self.success, self.metadata)
        return self.result

    def mark_failure(self):
        self.success = False

    def __enter__(self) -> "Timer":
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            self.mark_failure()
        self.stop()


@contextmanager
def time_operation(operation: str, metadata: Optional[Dict[str, Any]] = None) -> Iterator[Timer]:
    """Time the enclosed block; the result is on ``timer.result`` afterwards."""
    timer = Timer(operation, metadata)
    try:
        with timer:
            yield timer
    finally:
        logger.debug(
            "Operation timed",
            operation=operation,
            duration_ms=timer.result.duration_ms,
            success=timer.result.success,
            **timer.metadata,
        )
