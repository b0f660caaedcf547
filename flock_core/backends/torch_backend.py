"""
GPU backend built on torch.

Serves the COMPUTE_SHADER device and the legacy PIXEL_SHADER device. The
legacy variant runs the same kernels and only differs in how it is gated
and reported.
"""

from typing import Dict, Optional

import numpy as np
import torch

from ..config import FlockConfig, get_config
from ..errors import BackendUnavailableError, ModelLoadError
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


class TorchBackend(BackendAdapter):
    """Runs the policy network with torch on a CUDA (or explicitly chosen) device."""

    name = "torch"

    def __init__(
        self,
        torch_device: str = "cuda",
        device: InferenceDevice = InferenceDevice.COMPUTE_SHADER,
        config: Optional[FlockConfig] = None,
    ):
        self.config = config or get_config()
        self.torch_device = torch_device
        self.device = device
        self.legacy = device == InferenceDevice.PIXEL_SHADER

    def load_model(self, asset: ModelAsset) -> ModelHandle:
        if self.torch_device.startswith("cuda") and not torch.cuda.is_available():
            raise BackendUnavailableError(self.device.name, "CUDA is not available")

        if self.legacy:
            logger.warning(
                "PIXEL_SHADER is a legacy inference device; BURST is recommended instead",
                model_id=asset.model_id,
            )

        errors = asset.validate()
        if errors:
            raise ModelLoadError(asset.model_id, "; ".join(errors), backend=self.name)

        torch.set_num_threads(self.config.backend.torch_num_threads)

        try:
            payload = {
                key: torch.as_tensor(value, dtype=torch.float32, device=self.torch_device)
                for key, value in asset.parameters.items()
            }
        except RuntimeError as e:
            raise ModelLoadError(asset.model_id, str(e), backend=self.name) from e

        logger.debug(
            "Model loaded",
            model_id=asset.model_id,
            backend=self.name,
            torch_device=self.torch_device,
            tensors=len(payload),
        )
        return ModelHandle(model_id=asset.model_id, device=self.device, asset=asset, payload=payload)

    def forward(self, handle: ModelHandle, inputs: Dict[str, np.ndarray]) -> Dict[str, np.ndarray]:
        batch_size = check_batch_inputs(handle, inputs)
        asset = handle.asset
        params = handle.payload
        spec = asset.action_spec

        with torch.inference_mode():
            x = torch.as_tensor(inputs[OBS_INPUT], dtype=torch.float32, device=self.torch_device)
            if asset.memory_size:
                memory = torch.as_tensor(
                    inputs[MEMORY_INPUT], dtype=torch.float32, device=self.torch_device
                )
                x = torch.cat([x, memory], dim=1)

            for i in range(asset.num_hidden_layers):
                x = torch.tanh(x @ params[f"hidden_{i}/weight"] + params[f"hidden_{i}/bias"])

            outputs = {}
            if spec.num_continuous_actions:
                outputs[CONTINUOUS_MEAN] = x @ params["continuous/weight"] + params["continuous/bias"]
                outputs[CONTINUOUS_LOG_STD] = params["continuous/log_std"].expand(
                    batch_size, spec.num_continuous_actions
                )
            if spec.sum_discrete_branches:
                outputs[DISCRETE_LOGITS] = x @ params["discrete/weight"] + params["discrete/bias"]
            if asset.memory_size:
                outputs[MEMORY_OUTPUT] = torch.tanh(x @ params["memory/weight"] + params["memory/bias"])

            return {key: value.detach().cpu().numpy().copy() for key, value in outputs.items()}

    def release(self, handle: ModelHandle):
        if handle.released:
            return
        handle.payload = None
        handle.released = True
        if self.torch_device.startswith("cuda") and torch.cuda.is_available():
            torch.cuda.empty_cache()
        logger.debug("Model released", model_id=handle.model_id, backend=self.name)

    def describe(self):
        info = super().describe()
        info["torch_device"] = self.torch_device
        info["legacy"] = self.legacy
        return info
