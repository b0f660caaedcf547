"""
Vectorized CPU backend built on numpy.

Serves the DEFAULT and BURST devices.
"""

from typing import Dict

import numpy as np

from ..errors import ModelLoadError
from ..logging import get_logger
from ..model import ModelAsset
from ..types import InferenceDevice
from .base import (
    CONTINUOUS_LOG_STD,
    CONTINUOUS_MEAN,
    DISCRETE_LOGITS,
    MEMORY_INPUT,
    MEMORY_OUTPUT,
    OBS_INPUT,
    BackendAdapter,
    ModelHandle,
    check_batch_inputs,
)

logger = get_logger(__name__)


class NumpyBackend(BackendAdapter):
    """Runs the policy network with numpy matrix products on the CPU."""

    name = "numpy"

    def __init__(self, device: InferenceDevice = InferenceDevice.BURST):
        self.device = device

    def load_model(self, asset: ModelAsset) -> ModelHandle:
        errors = asset.validate()
        if errors:
            raise ModelLoadError(asset.model_id, "; ".join(errors), backend=self.name)

        payload = {key: np.array(value, dtype=np.float32) for key, value in asset.parameters.items()}

        logger.debug("Model loaded", model_id=asset.model_id, backend=self.name, tensors=len(payload))
        return ModelHandle(model_id=asset.model_id, device=self.device, asset=asset, payload=payload)

    def forward(self, handle: ModelHandle, inputs: Dict[str, np.ndarray]) -> Dict[str, np.ndarray]:
        batch_size = check_batch_inputs(handle, inputs)
        asset = handle.asset
        params = handle.payload

        x = np.asarray(inputs[OBS_INPUT], dtype=np.float32)
        if asset.memory_size:
            x = np.concatenate([x, np.asarray(inputs[MEMORY_INPUT], dtype=np.float32)], axis=1)

        for i in range(asset.num_hidden_layers):
            x = np.tanh(x @ params[f"hidden_{i}/weight"] + params[f"hidden_{i}/bias"])

        outputs: Dict[str, np.ndarray] = {}
        spec = asset.action_spec

        if spec.num_continuous_actions:
            outputs[CONTINUOUS_MEAN] = x @ params["continuous/weight"] + params["continuous/bias"]
            outputs[CONTINUOUS_LOG_STD] = np.broadcast_to(
                params["continuous/log_std"], (batch_size, spec.num_continuous_actions)
            ).copy()

        if spec.sum_discrete_branches:
            outputs[DISCRETE_LOGITS] = x @ params["discrete/weight"] + params["discrete/bias"]

        if asset.memory_size:
            outputs[MEMORY_OUTPUT] = np.tanh(x @ params["memory/weight"] + params["memory/bias"])

        return outputs

    def release(self, handle: ModelHandle):
        if handle.released:
            return
        handle.payload = None
        handle.released = True
        logger.debug("Model released", model_id=handle.model_id, backend=self.name)
