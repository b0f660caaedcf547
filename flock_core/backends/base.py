"""
Backend Adapter Interface

The scheduler talks to the concrete inference engine only through this
interface: load a model, run one batched forward pass, release the model.
"""

import itertools
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict

import numpy as np

from ..model import ModelAsset
from ..types import InferenceDevice

# Input tensor names
OBS_INPUT = "obs"
MEMORY_INPUT = "memory"

# Output tensor names
CONTINUOUS_MEAN = "continuous_mean"
CONTINUOUS_LOG_STD = "continuous_log_std"
DISCRETE_LOGITS = "discrete_logits"
MEMORY_OUTPUT = "memory"

_handle_counter = itertools.count(1)


@dataclass
class ModelHandle:
    """A model loaded into a backend."""

    model_id: str
    device: InferenceDevice
    asset: ModelAsset
    payload: Any = None
    handle_id: int = field(default_factory=lambda: next(_handle_counter))
    released: bool = False


class BackendAdapter(ABC):
    """Capability surface required from a concrete inference engine."""

    name: str = "abstract"
    device: InferenceDevice = InferenceDevice.DEFAULT

    @abstractmethod
    def load_model(self, asset: ModelAsset) -> ModelHandle:
        """Load ``asset`` and return a handle usable with ``forward``.

        Raises:
            ModelLoadError: the asset is inconsistent or cannot be placed on the device
            BackendUnavailableError: the device itself cannot be used
        """

    @abstractmethod
    def forward(self, handle: ModelHandle, inputs: Dict[str, np.ndarray]) -> Dict[str, np.ndarray]:
        """Run one forward pass over a batch.

        ``inputs`` holds ``obs`` with shape ``(batch, observation_size)`` and,
        for recurrent models, ``memory`` with shape ``(batch, memory_size)``.
        Outputs are host numpy arrays with the batch as first dimension.
        """

    @abstractmethod
    def release(self, handle: ModelHandle):
        """Free everything held for ``handle``. Safe to call twice."""

    def describe(self) -> Dict[str, Any]:
        return {"backend": self.name, "device": self.device.name}


def check_batch_inputs(handle: ModelHandle, inputs: Dict[str, np.ndarray]) -> int:
    """Validate batched inputs against the loaded model, returning the batch size."""
    if handle.released:
        raise RuntimeError(f"Model handle {handle.handle_id} was released")

    obs = inputs.get(OBS_INPUT)
    if obs is None or obs.ndim != 2:
        raise ValueError("obs input must be a 2-D array")

    asset = handle.asset
    if obs.shape[1] != asset.observation_size:
        raise ValueError(
            f"obs input has width {obs.shape[1]}, model expects {asset.observation_size}"
        )

    if asset.memory_size:
        memory = inputs.get(MEMORY_INPUT)
        if memory is None or memory.shape != (obs.shape[0], asset.memory_size):
            raise ValueError(f"memory input must have shape {(obs.shape[0], asset.memory_size)}")

    return obs.shape[0]
