"""
Process-wide random source for stochastic action selection.

All schedulers draw from the same seeded generator so that a run is
reproducible from ``RANDOM_SEED`` alone.
"""

import threading
from typing import Optional, Sequence, Union

import numpy as np

from ..config import get_config

Shape = Union[int, Sequence[int]]


class RandomSource:
    """A seeded numpy Generator guarded by a lock."""

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed
        self._generator = np.random.default_rng(seed)
        self._lock = threading.Lock()

    def normal(self, shape: Shape) -> np.ndarray:
        """Standard normal draws."""
        with self._lock:
            return self._generator.standard_normal(shape).astype(np.float32)

    def uniform(self, shape: Shape) -> np.ndarray:
        """Uniform draws in [0, 1)."""
        with self._lock:
            return self._generator.random(shape)

    def reseed(self, seed: Optional[int]):
        with self._lock:
            self.seed = seed
            self._generator = np.random.default_rng(seed)


_global_random_source: Optional[RandomSource] = None
_global_lock = threading.Lock()


def get_random_source() -> RandomSource:
    """Get the process-wide random source, seeded from configuration."""
    global _global_random_source
    with _global_lock:
        if _global_random_source is None:
            _global_random_source = RandomSource(get_config().inference.random_seed)
        return _global_random_source


def reset_random_source(seed: Optional[int] = None):
    """Drop the process-wide random source; the next use reseeds it.

    With an explicit ``seed`` the replacement is created immediately.
    """
    global _global_random_source
    with _global_lock:
        _global_random_source = RandomSource(seed) if seed is not None else None
