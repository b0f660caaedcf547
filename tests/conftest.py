"""Shared test fixtures for flock-core."""

import numpy as np
import pytest

from flock_core.backends import NumpyBackend
from flock_core.config import get_config, reset_config
from flock_core.metrics import reset_metrics_collector
from flock_core.model import ModelAsset
from flock_core.scheduler import SchedulerRegistry
from flock_core.types import ActionSpec, AgentObservation, InferenceDevice, ObservationSpec
from flock_core.utils.rng import reset_random_source

FLOCK_ENV_VARS = [
    "ENABLE_GPU",
    "TORCH_NUM_THREADS",
    "ALLOW_LEGACY_BACKENDS",
    "INFERENCE_DEVICE",
    "DETERMINISTIC_INFERENCE",
    "RANDOM_SEED",
    "RAISE_ON_SHAPE_MISMATCH",
    "ENABLE_METRICS",
    "LOG_LEVEL",
    "LOG_FORMAT",
    "LOG_TO_FILE",
    "LOG_DIR",
    "DEBUG",
]


@pytest.fixture(autouse=True)
def _reset_global_state(monkeypatch):
    """Reset global config, random source and metrics for all tests."""
    for name in FLOCK_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_config()
    reset_random_source()
    reset_metrics_collector()
    yield
    reset_config()
    reset_random_source()
    reset_metrics_collector()


@pytest.fixture
def config():
    """Return the default FlockConfig."""
    return get_config()


@pytest.fixture
def continuous_spec():
    return ActionSpec.make_continuous(2)


@pytest.fixture
def discrete_spec():
    return ActionSpec.make_discrete(3, 2)


@pytest.fixture
def mixed_spec():
    return ActionSpec(num_continuous_actions=2, discrete_branch_sizes=(3, 2))


@pytest.fixture
def observation_spec():
    return ObservationSpec.vector(4)


@pytest.fixture
def model(mixed_spec):
    """A small random policy: 4 observations, 2 continuous actions, branches (3, 2)."""
    return ModelAsset.random("walker", 4, mixed_spec, hidden_sizes=(8,), seed=1)


@pytest.fixture
def recurrent_model(mixed_spec):
    return ModelAsset.random("walker-rnn", 4, mixed_spec, hidden_sizes=(8,), memory_size=3, seed=2)


class CountingBackend(NumpyBackend):
    """Numpy backend that records every forward pass."""

    def __init__(self, device=InferenceDevice.BURST):
        super().__init__(device=device)
        self.forward_calls = 0
        self.batch_sizes = []
        self.released = []

    def forward(self, handle, inputs):
        self.forward_calls += 1
        self.batch_sizes.append(inputs["obs"].shape[0])
        return super().forward(handle, inputs)

    def release(self, handle):
        self.released.append(handle.handle_id)
        super().release(handle)


class FailingBackend(NumpyBackend):
    """Numpy backend whose forward pass fails after ``succeed`` successful calls."""

    def __init__(self, succeed=0, device=InferenceDevice.BURST):
        super().__init__(device=device)
        self.succeed = succeed
        self.forward_calls = 0

    def forward(self, handle, inputs):
        self.forward_calls += 1
        if self.forward_calls > self.succeed:
            raise RuntimeError("device lost")
        return super().forward(handle, inputs)


@pytest.fixture
def counting_backend():
    return CountingBackend()


@pytest.fixture
def failing_backend():
    """Factory for backends that fail after a number of successful forward passes."""
    return FailingBackend


@pytest.fixture
def registry():
    """A registry whose runners all use fresh CountingBackends."""
    backends = []

    def factory(device, config):
        backend = CountingBackend(device=device)
        backends.append(backend)
        return backend

    registry = SchedulerRegistry(backend_factory=factory)
    registry.backends = backends
    yield registry
    registry.dispose_all()


@pytest.fixture
def make_obs():
    """Build a single-sensor observation from a flat list of values."""

    def _make(agent_id, values, done=False, action_mask=None):
        return AgentObservation(
            agent_id=agent_id,
            observations=(np.asarray(values, dtype=np.float32),),
            done=done,
            action_mask=action_mask,
        )

    return _make
