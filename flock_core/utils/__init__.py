"""
Utility modules for Flock core functionality.
"""

from .rng import RandomSource, get_random_source, reset_random_source
from .timers import Timer, TimingResult, time_operation

__all__ = [
    "Timer",
    "TimingResult",
    "time_operation",
    "RandomSource",
    "get_random_source",
    "reset_random_source",
]
