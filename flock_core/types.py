"""
Core Type Definitions for Flock

This module defines the value types shared by the decision requesters, the
inference scheduler and the backend adapters: action and observation specs,
per-agent observations and decided actions, and scheduler identity.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum, auto
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np


class InferenceDevice(IntEnum):
    """Where to run the forward pass."""

    DEFAULT = 0  # Same as BURST for now
    COMPUTE_SHADER = 1  # GPU compute
    BURST = 2  # Vectorized CPU
    PIXEL_SHADER = 3  # Legacy GPU path, kept for compatibility

    @classmethod
    def parse(cls, value: Union["InferenceDevice", str, int]) -> "InferenceDevice":
        """Parse a device from an enum member, its name or its integer value."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            name = value.strip().upper().replace("-", "_")
            if name.isdigit():
                return cls(int(name))
            try:
                return cls[name]
            except KeyError:
                raise ValueError(f"Unknown inference device: {value}") from None
        return cls(int(value))

    @property
    def is_gpu(self) -> bool:
        return self in (InferenceDevice.COMPUTE_SHADER, InferenceDevice.PIXEL_SHADER)


class SchedulerState(Enum):
    """Lifecycle state of a model runner within a decision step."""

    IDLE = auto()  # Nothing buffered, nothing decided yet
    ACCUMULATING = auto()  # Observations buffered, batch not yet run
    BATCH_READY = auto()  # Decided batch published, nothing new buffered
    FAILED = auto()  # A forward pass failed; runner is unusable
    DISPOSED = auto()  # Backend resources released


@dataclass(frozen=True)
class ActionSpec:
    """Sizes of the continuous and discrete action channels of a behavior."""

    num_continuous_actions: int = 0
    discrete_branch_sizes: Tuple[int, ...] = ()

    def __post_init__(self):
        """Validate action spec."""
        object.__setattr__(self, "discrete_branch_sizes", tuple(int(b) for b in self.discrete_branch_sizes))

        if self.num_continuous_actions < 0:
            raise ValueError("num_continuous_actions cannot be negative")

        if any(b < 1 for b in self.discrete_branch_sizes):
            raise ValueError("discrete branch sizes must be at least 1")

    @property
    def num_discrete_actions(self) -> int:
        """Number of discrete branches (one integer action per branch)."""
        return len(self.discrete_branch_sizes)

    @property
    def sum_discrete_branches(self) -> int:
        return sum(self.discrete_branch_sizes)

    @property
    def is_empty(self) -> bool:
        return self.num_continuous_actions == 0 and self.num_discrete_actions == 0

    @classmethod
    def make_continuous(cls, size: int) -> "ActionSpec":
        return cls(num_continuous_actions=size)

    @classmethod
    def make_discrete(cls, *branch_sizes: int) -> "ActionSpec":
        return cls(discrete_branch_sizes=tuple(branch_sizes))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "num_continuous_actions": self.num_continuous_actions,
            "discrete_branch_sizes": list(self.discrete_branch_sizes),
        }


@dataclass(frozen=True)
class ObservationSpec:
    """Fixed per-sensor observation shapes shared by all agents of a behavior."""

    sensor_shapes: Tuple[Tuple[int, ...], ...]

    def __post_init__(self):
        """Validate observation spec."""
        shapes = tuple(tuple(int(d) for d in shape) for shape in self.sensor_shapes)
        object.__setattr__(self, "sensor_shapes", shapes)

        if not shapes:
            raise ValueError("at least one sensor shape is required")

        for shape in shapes:
            if not shape or any(d < 1 for d in shape):
                raise ValueError(f"invalid sensor shape: {shape}")

    @property
    def num_sensors(self) -> int:
        return len(self.sensor_shapes)

    @property
    def flat_size(self) -> int:
        """Length of the concatenated, flattened observation vector."""
        return int(sum(np.prod(shape) for shape in self.sensor_shapes))

    @classmethod
    def vector(cls, size: int) -> "ObservationSpec":
        """Spec for a single flat vector sensor."""
        return cls(sensor_shapes=((size,),))


@dataclass(frozen=True)
class AgentObservation:
    """One agent's input for the current decision step."""

    agent_id: int
    observations: Tuple[np.ndarray, ...]
    done: bool = False
    max_step_reached: bool = False
    action_mask: Optional[np.ndarray] = None

    def __post_init__(self):
        # Take private copies so later mutation by the sensor cannot leak into a batch
        obs = tuple(np.array(o, dtype=np.float32, copy=True) for o in self.observations)
        object.__setattr__(self, "observations", obs)

        if self.action_mask is not None:
            object.__setattr__(self, "action_mask", np.array(self.action_mask, dtype=bool, copy=True))

    def flatten(self) -> np.ndarray:
        """Concatenate all sensor observations into one flat vector."""
        return np.concatenate([o.reshape(-1) for o in self.observations])


def _frozen_array(values: Any, dtype) -> np.ndarray:
    arr = np.array(values, dtype=dtype, copy=True).reshape(-1)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class ActionResult:
    """Decided actions for one agent; read-only value, safe to keep."""

    continuous_actions: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float32))
    discrete_actions: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int32))

    def __post_init__(self):
        object.__setattr__(self, "continuous_actions", _frozen_array(self.continuous_actions, np.float32))
        object.__setattr__(self, "discrete_actions", _frozen_array(self.discrete_actions, np.int32))

    @classmethod
    def empty(cls) -> "ActionResult":
        """The explicit "no decision available" result."""
        return cls()

    @property
    def is_empty(self) -> bool:
        return self.continuous_actions.size == 0 and self.discrete_actions.size == 0

    def copy(self) -> "ActionResult":
        return ActionResult(self.continuous_actions, self.discrete_actions)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ActionResult):
            return NotImplemented
        return np.array_equal(self.continuous_actions, other.continuous_actions) and np.array_equal(
            self.discrete_actions, other.discrete_actions
        )

    def __hash__(self) -> int:
        return hash((self.continuous_actions.tobytes(), self.discrete_actions.tobytes()))

    def to_dict(self) -> Dict[str, List]:
        return {
            "continuous_actions": self.continuous_actions.tolist(),
            "discrete_actions": self.discrete_actions.tolist(),
        }


@dataclass(frozen=True)
class SchedulerKey:
    """Identifies which shared model runner a policy binds to."""

    model_id: str
    device: InferenceDevice
    deterministic: bool


@dataclass(frozen=True)
class ModelSetEvent:
    """Sent once per policy to the optional telemetry observer."""

    model_id: str
    behavior_name: str
    device: InferenceDevice
    deterministic: bool
    observation_shapes: Tuple[Tuple[int, ...], ...]
    action_spec: ActionSpec
    actuator_names: Tuple[str, ...] = ()


def as_sensor_tuple(observations: Union[np.ndarray, Sequence[Any]]) -> Tuple[np.ndarray, ...]:
    """Normalize a single array or a sequence of per-sensor arrays into a tuple."""
    if isinstance(observations, np.ndarray):
        return (observations,)
    return tuple(np.asarray(o) for o in observations)
