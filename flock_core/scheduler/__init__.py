"""
Shared inference scheduling for Flock

This package contains the model runner that batches observations from many
agents into one forward pass, the action decoding it applies to the model
outputs, and the registry that shares one runner per model configuration.
"""

from .decoding import select_continuous, select_discrete
from .model_runner import ModelRunner
from .registry import SchedulerRegistry

__all__ = [
    "ModelRunner",
    "SchedulerRegistry",
    "select_continuous",
    "select_discrete",
]
