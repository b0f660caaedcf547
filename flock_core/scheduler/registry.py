"""
Scheduler Registry

Hands out one shared ``ModelRunner`` per (model, device, determinism)
combination so that every policy using the same model lands in the same
batch. The registry is an ordinary object: create one per environment, pass
it to the policies, and call ``dispose_all`` at teardown.
"""

import threading
from typing import Callable, Dict, List, Optional

from ..backends import BackendAdapter, create_backend
from ..config import FlockConfig, get_config
from ..errors import BackendUnavailableError, ModelLoadError, raise_configuration_error
from ..logging import get_logger, trace_operation
from ..metrics import MetricsCollector
from ..model import ModelAsset
from ..types import ActionSpec, InferenceDevice, SchedulerKey, SchedulerState
from ..utils.rng import RandomSource
from .model_runner import ModelRunner

logger = get_logger(__name__)

BackendFactory = Callable[[InferenceDevice, FlockConfig], BackendAdapter]


class SchedulerRegistry:
    """Create-on-first-use lookup of shared model runners."""

    def __init__(
        self,
        config: Optional[FlockConfig] = None,
        backend_factory: Optional[BackendFactory] = None,
        metrics: Optional[MetricsCollector] = None,
        random_source: Optional[RandomSource] = None,
    ):
        self.config = config or get_config()
        self.backend_factory = backend_factory or create_backend
        self.metrics = metrics
        self.random_source = random_source

        self._runners: Dict[SchedulerKey, ModelRunner] = {}
        self.lock = threading.RLock()

    def get_or_create(
        self,
        model: ModelAsset,
        action_spec: ActionSpec,
        device: Optional[InferenceDevice] = None,
        deterministic: Optional[bool] = None,
    ) -> ModelRunner:
        """
        Return the runner for this model configuration, creating it if needed.

        Args:
            model: Policy network
            action_spec: Action spec of the requesting behavior
            device: Inference device (configured default if None)
            deterministic: Deterministic action selection (configured default if None)

        Raises:
            ModelLoadError: the runner could not be constructed, or an existing
                runner for this model serves a different action spec
            ConfigurationError: the device is not a known inference device
        """
        if device is None:
            device = self.config.inference.device
        try:
            device = InferenceDevice.parse(device)
        except ValueError:
            raise_configuration_error("default_device", device, "a known inference device")
        if deterministic is None:
            deterministic = self.config.inference.deterministic_inference

        key = SchedulerKey(model.model_id, device, deterministic)

        with self.lock:
            runner = self._runners.get(key)
            if runner is not None and runner.state in (SchedulerState.FAILED, SchedulerState.DISPOSED):
                self._evict(key, runner)
                runner = None

            if runner is not None:
                if runner.action_spec != action_spec:
                    raise ModelLoadError(
                        model.model_id,
                        "model is already in use with a different action spec",
                        existing_spec=runner.action_spec.to_dict(),
                        requested_spec=action_spec.to_dict(),
                    )
                return runner

            runner = self._create_runner(model, action_spec, device, deterministic)
            self._runners[key] = runner
            return runner

    def _evict(self, key: SchedulerKey, runner: ModelRunner):
        del self._runners[key]
        logger.warning(
            "Replacing unusable model runner",
            model_id=runner.model_id,
            device=runner.device.name,
            state=runner.state.name,
        )
        runner.dispose()

    @trace_operation("create_model_runner")
    def _create_runner(
        self, model: ModelAsset, action_spec: ActionSpec, device: InferenceDevice, deterministic: bool
    ) -> ModelRunner:
        try:
            backend = self.backend_factory(device, self.config)
        except BackendUnavailableError as e:
            raise ModelLoadError(model.model_id, e.reason, device=device.name) from e

        runner = ModelRunner(
            model,
            action_spec,
            device=device,
            deterministic=deterministic,
            backend=backend,
            config=self.config,
            metrics=self.metrics,
            random_source=self.random_source,
        )

        logger.info(
            "Model runner registered",
            model_id=model.model_id,
            device=device.name,
            deterministic=deterministic,
            registered=len(self._runners) + 1,
        )
        return runner

    def get(self, key: SchedulerKey) -> Optional[ModelRunner]:
        with self.lock:
            return self._runners.get(key)

    def runners(self) -> List[ModelRunner]:
        with self.lock:
            return list(self._runners.values())

    def dispose_all(self):
        """Release every registered runner's backend resources."""
        with self.lock:
            runners = list(self._runners.values())
            self._runners.clear()

        errors = []
        for runner in runners:
            try:
                runner.dispose()
            except Exception as e:
                errors.append(e)
                logger.error("Failed to dispose model runner", model_id=runner.model_id, error=str(e))

        logger.info("Scheduler registry disposed", runners=len(runners), failures=len(errors))

        if errors:
            raise errors[0]

    def __len__(self) -> int:
        with self.lock:
            return len(self._runners)

    def __contains__(self, key: SchedulerKey) -> bool:
        with self.lock:
            return key in self._runners

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.dispose_all()
