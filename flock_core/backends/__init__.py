"""
Backend adapters for Flock

One adapter per inference device, all implementing ``BackendAdapter``.
``create_backend`` picks the adapter for a device at scheduler construction.
"""

from typing import Optional

from ..config import FlockConfig, get_config
from ..errors import BackendUnavailableError
from ..types import InferenceDevice
from .base import BackendAdapter, ModelHandle
from .numpy_backend import NumpyBackend

# Conditional import for torch (graceful degradation)
try:
    from .torch_backend import TorchBackend

    TORCH_AVAILABLE = True
except ImportError:
    TORCH_AVAILABLE = False
    TorchBackend = None


def create_backend(device: InferenceDevice, config: Optional[FlockConfig] = None) -> BackendAdapter:
    """Create the backend adapter serving ``device``."""
    config = config or get_config()
    device = InferenceDevice.parse(device)

    if device in (InferenceDevice.DEFAULT, InferenceDevice.BURST):
        return NumpyBackend(device=device)

    if not config.backend.enable_gpu:
        raise BackendUnavailableError(device.name, "GPU devices are disabled (ENABLE_GPU=false)")

    if device == InferenceDevice.PIXEL_SHADER and not config.backend.allow_legacy_backends:
        raise BackendUnavailableError(device.name, "legacy backends are disabled")

    if not TORCH_AVAILABLE:
        raise BackendUnavailableError(device.name, "torch is not installed")

    return TorchBackend(torch_device="cuda", device=device, config=config)


__all__ = [
    "BackendAdapter",
    "ModelHandle",
    "NumpyBackend",
    "TorchBackend",
    "TORCH_AVAILABLE",
    "create_backend",
]
