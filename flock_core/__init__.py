"""
Flock Core - Shared batched inference for many agents.

Agents of one or more behaviors that use the same policy model submit their
observations independently; a shared model runner turns them into a single
batched forward pass per decision step and hands every agent its own action.
"""

from .config import FlockConfig
from .errors import (
    BatchInferenceError,
    FlockError,
    ModelLoadError,
    SchedulerDisposedError,
    ShapeMismatchError,
)
from .model import ModelAsset
from .policy import LearnedPolicy
from .scheduler import ModelRunner, SchedulerRegistry
from .types import (
    ActionResult,
    ActionSpec,
    AgentObservation,
    InferenceDevice,
    ObservationSpec,
    SchedulerKey,
    SchedulerState,
)

__all__ = [
    "FlockConfig",
    "ModelAsset",
    "LearnedPolicy",
    "ModelRunner",
    "SchedulerRegistry",
    "ActionResult",
    "ActionSpec",
    "AgentObservation",
    "InferenceDevice",
    "ObservationSpec",
    "SchedulerKey",
    "SchedulerState",
    "FlockError",
    "ShapeMismatchError",
    "ModelLoadError",
    "BatchInferenceError",
    "SchedulerDisposedError",
]
