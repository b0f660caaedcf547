"""
Shared Model Runner

A ``ModelRunner`` owns one loaded model and one backend context. Policies
that share the model buffer their agents' observations here during a
decision step; the first policy to ask for a decision triggers a single
batched forward pass and every agent's action is then read back by id.

All mutable state (pending batch, decided batch, recurrent memories) is
guarded by one lock per runner, so buffering never interleaves with a batch
being snapshotted and no two batches run at once.
"""

import threading
from collections import OrderedDict
from typing import Any, Dict, List, Optional

import numpy as np

from ..backends import BackendAdapter, create_backend
from ..backends.base import (
    CONTINUOUS_LOG_STD,
    CONTINUOUS_MEAN,
    DISCRETE_LOGITS,
    MEMORY_INPUT,
    MEMORY_OUTPUT,
    OBS_INPUT,
)
from ..config import FlockConfig, get_config
from ..errors import (
    BackendUnavailableError,
    BatchInferenceError,
    ModelLoadError,
    SchedulerDisposedError,
    ShapeMismatchError,
)
from ..logging import get_logger
from ..metrics import InferenceMetricsCollector, MetricsCollector, get_metrics_collector
from ..model import ModelAsset
from ..types import (
    ActionResult,
    ActionSpec,
    AgentObservation,
    InferenceDevice,
    SchedulerKey,
    SchedulerState,
)
from ..utils.rng import RandomSource, get_random_source
from ..utils.timers import time_operation
from ..validation import check_action_mask, check_finite
from .decoding import select_continuous, select_discrete

logger = get_logger(__name__)


class ModelRunner:
    """
    Batches observations from many agents into one forward pass per step.

    Features:
    - Last-write-wins buffering keyed by agent id
    - Idempotent batch trigger (no new observations, no new inference)
    - Deterministic or sampled action selection
    - Per-agent recurrent memory, cleared when an episode ends
    - Permanent failure after a backend error; no automatic retry
    """

    def __init__(
        self,
        model: ModelAsset,
        action_spec: ActionSpec,
        device: InferenceDevice = InferenceDevice.DEFAULT,
        deterministic: bool = False,
        backend: Optional[BackendAdapter] = None,
        config: Optional[FlockConfig] = None,
        metrics: Optional[MetricsCollector] = None,
        random_source: Optional[RandomSource] = None,
    ):
        """
        Load ``model`` into a backend and prepare an empty batch.

        Args:
            model: Policy network to run
            action_spec: Action spec of the behaviors using this runner
            device: Inference device; selects the backend when none is given
            deterministic: Select mean/arg-max actions instead of sampling
            backend: Backend adapter to use instead of the device default
            config: Configuration (global config if None)
            metrics: Metrics collector (global collector if None)
            random_source: Random source for sampling (process-wide if None)

        Raises:
            ModelLoadError: the model does not fit the spec or cannot be loaded
        """
        self.config = config or get_config()
        self.model = model
        self.action_spec = action_spec
        self.device = InferenceDevice.parse(device)
        self.deterministic = deterministic
        self.key = SchedulerKey(model.model_id, self.device, deterministic)
        self._random_source = random_source

        if model.action_spec != action_spec:
            raise ModelLoadError(
                model.model_id,
                "model action spec does not match the behavior",
                model_spec=model.action_spec.to_dict(),
                behavior_spec=action_spec.to_dict(),
            )

        try:
            self.backend = backend or create_backend(self.device, self.config)
            self.handle = self.backend.load_model(model)
        except ModelLoadError:
            raise
        except BackendUnavailableError as e:
            raise ModelLoadError(model.model_id, e.reason, device=self.device.name) from e
        except Exception as e:
            raise ModelLoadError(model.model_id, str(e), device=self.device.name) from e

        self._metrics: Optional[InferenceMetricsCollector] = None
        if self.config.inference.enable_metrics:
            self._metrics = InferenceMetricsCollector(
                metrics or get_metrics_collector(), model.model_id, self.device.name
            )

        # Batch state
        self._pending: "OrderedDict[int, AgentObservation]" = OrderedDict()
        self._decided: Dict[int, ActionResult] = {}
        self._memories: Dict[int, np.ndarray] = {}
        self._has_decided = False
        self._failure: Optional[BatchInferenceError] = None
        self._disposed = threading.Event()

        # Statistics
        self.total_observations = 0
        self.total_batches = 0
        self.total_agents_decided = 0
        self.skipped_triggers = 0

        # Thread safety
        self.lock = threading.RLock()

        logger.info(
            "Model runner initialized",
            model_id=model.model_id,
            device=self.device.name,
            backend=self.backend.name,
            deterministic=deterministic,
            memory_size=model.memory_size,
        )

    @property
    def model_id(self) -> str:
        return self.model.model_id

    @property
    def state(self) -> SchedulerState:
        with self.lock:
            if self._disposed.is_set():
                return SchedulerState.DISPOSED
            if self._failure is not None:
                return SchedulerState.FAILED
            if self._pending:
                return SchedulerState.ACCUMULATING
            if self._has_decided:
                return SchedulerState.BATCH_READY
            return SchedulerState.IDLE

    @property
    def is_disposed(self) -> bool:
        return self._disposed.is_set()

    @property
    def random_source(self) -> RandomSource:
        return self._random_source or get_random_source()

    def has_model(self, model: ModelAsset, device: InferenceDevice, deterministic: bool) -> bool:
        """True if this runner serves exactly this model/device/determinism combination."""
        return self.key == SchedulerKey(model.model_id, InferenceDevice.parse(device), deterministic)

    def buffer_observation(self, agent_id: int, observation: AgentObservation):
        """
        Add or replace ``agent_id``'s observation for the current step.

        A terminal observation (``done``) is not inferred; it drops the
        agent's pending entry, its last decision and its memory instead.
        """
        self._check_not_disposed("buffer observation")

        with self.lock:
            self._check_not_disposed("buffer observation")
            self._check_not_failed()

            if observation.agent_id != agent_id:
                raise ValueError(
                    f"observation belongs to agent {observation.agent_id}, not {agent_id}"
                )
            self._check_observation(agent_id, observation)

            if observation.done:
                self._pending.pop(agent_id, None)
                self._decided.pop(agent_id, None)
                self._memories.pop(agent_id, None)
                logger.debug("Agent episode ended", model_id=self.model_id, agent_id=agent_id)
                return

            self._pending[agent_id] = observation
            self.total_observations += 1

            if self._metrics:
                self._metrics.record_observation_buffered()

    def discard_observation(self, agent_id: int) -> bool:
        """Drop ``agent_id``'s pending observation, if any."""
        with self.lock:
            return self._pending.pop(agent_id, None) is not None

    def run_batch(self) -> bool:
        """
        Run one forward pass over every buffered observation.

        Returns False without touching the decided batch when nothing was
        buffered since the last run.

        Raises:
            BatchInferenceError: the backend failed; the runner stays failed
            SchedulerDisposedError: the runner was disposed
        """
        self._check_not_disposed("run batch")

        with self.lock:
            self._check_not_disposed("run batch")
            self._check_not_failed()

            if not self._pending:
                self.skipped_triggers += 1
                return False

            agent_ids = list(self._pending.keys())
            observations = list(self._pending.values())
            self._pending.clear()

            try:
                with time_operation(
                    "model_runner_forward",
                    {"model_id": self.model_id, "batch_size": len(agent_ids)},
                ) as timer:
                    outputs = self.backend.forward(self.handle, self._build_inputs(agent_ids, observations))
                    decided, memories = self._decode(agent_ids, observations, outputs)
            except Exception as e:
                self._fail(len(agent_ids), e)

            self._decided = decided
            self._memories.update(memories)
            self._has_decided = True
            self.total_batches += 1
            self.total_agents_decided += len(agent_ids)

            if self._metrics:
                self._metrics.record_batch_processed(len(agent_ids), timer.result.duration_seconds)

            logger.debug(
                "Batch decided",
                model_id=self.model_id,
                batch_size=len(agent_ids),
                duration_ms=timer.result.duration_ms,
            )
            return True

    def get_action(self, agent_id: int) -> ActionResult:
        """Return a copy of ``agent_id``'s latest decision, or the empty result."""
        with self.lock:
            result = self._decided.get(agent_id)
        if result is None:
            return ActionResult.empty()
        return result.copy()

    def pending_agent_ids(self) -> List[int]:
        with self.lock:
            return list(self._pending.keys())

    def decided_agent_ids(self) -> List[int]:
        with self.lock:
            return list(self._decided.keys())

    def dispose(self):
        """
        Stop accepting work and release the backend model.

        Waits for an in-flight batch to finish; that batch is the last one run.
        """
        self._disposed.set()

        with self.lock:
            if self.handle.released:
                return
            self._pending.clear()
            self._decided = {}
            self._memories.clear()
            self.backend.release(self.handle)

        logger.info("Model runner disposed", model_id=self.model_id, device=self.device.name)

    def get_stats(self) -> Dict[str, Any]:
        """Get runner statistics."""
        with self.lock:
            return {
                "model_id": self.model_id,
                "device": self.device.name,
                "backend": self.backend.name,
                "deterministic": self.deterministic,
                "state": self.state.name,
                "pending_agents": len(self._pending),
                "decided_agents": len(self._decided),
                "tracked_memories": len(self._memories),
                "total_observations": self.total_observations,
                "total_batches": self.total_batches,
                "total_agents_decided": self.total_agents_decided,
                "skipped_triggers": self.skipped_triggers,
                "avg_batch_size": (
                    self.total_agents_decided / self.total_batches if self.total_batches else 0.0
                ),
                "failure": str(self._failure) if self._failure else None,
            }

    def _check_not_disposed(self, operation: str):
        if self._disposed.is_set():
            raise SchedulerDisposedError(self.model_id, operation)

    def _check_not_failed(self):
        if self._failure is not None:
            raise BatchInferenceError(
                self.model_id,
                self._failure.agent_count,
                f"runner failed earlier: {self._failure.reason}",
            )

    def _check_observation(self, agent_id: int, observation: AgentObservation):
        flat_size = sum(o.size for o in observation.observations)
        if flat_size != self.model.observation_size:
            raise ShapeMismatchError(
                "observations", self.model.observation_size, flat_size, agent_id=agent_id
            )

        check_finite(observation)
        check_action_mask(observation, self.action_spec)

    def _build_inputs(self, agent_ids: List[int], observations: List[AgentObservation]) -> Dict[str, np.ndarray]:
        inputs = {OBS_INPUT: np.stack([o.flatten() for o in observations]).astype(np.float32)}

        if self.model.memory_size:
            zeros = np.zeros(self.model.memory_size, dtype=np.float32)
            inputs[MEMORY_INPUT] = np.stack([self._memories.get(a, zeros) for a in agent_ids])

        return inputs

    def _decode(self, agent_ids, observations, outputs):
        """Split batched outputs into one ActionResult per agent."""
        batch_size = len(agent_ids)
        spec = self.action_spec

        continuous = np.zeros((batch_size, 0), dtype=np.float32)
        if spec.num_continuous_actions:
            mean = self._output(outputs, CONTINUOUS_MEAN, (batch_size, spec.num_continuous_actions))
            log_std = self._output(outputs, CONTINUOUS_LOG_STD, (batch_size, spec.num_continuous_actions))
            continuous = select_continuous(mean, log_std, self.deterministic, self.random_source)

        discrete = np.zeros((batch_size, 0), dtype=np.int32)
        if spec.num_discrete_actions:
            logits = self._output(outputs, DISCRETE_LOGITS, (batch_size, spec.sum_discrete_branches))
            masks = None
            if any(o.action_mask is not None for o in observations):
                masks = np.stack([
                    o.action_mask if o.action_mask is not None
                    else np.ones(spec.sum_discrete_branches, dtype=bool)
                    for o in observations
                ])
            discrete = select_discrete(
                logits, spec.discrete_branch_sizes, masks, self.deterministic, self.random_source
            )

        memories = {}
        if self.model.memory_size:
            memory = self._output(outputs, MEMORY_OUTPUT, (batch_size, self.model.memory_size))
            memories = {agent_id: memory[i].astype(np.float32) for i, agent_id in enumerate(agent_ids)}

        decided = {
            agent_id: ActionResult(continuous[i], discrete[i]) for i, agent_id in enumerate(agent_ids)
        }
        return decided, memories

    @staticmethod
    def _output(outputs: Dict[str, np.ndarray], name: str, shape: tuple) -> np.ndarray:
        value = outputs.get(name)
        if value is None:
            raise ValueError(f"backend output {name} is missing")
        value = np.asarray(value)
        if value.shape != shape:
            raise ValueError(f"backend output {name} has shape {value.shape}, expected {shape}")
        if not np.all(np.isfinite(value)):
            raise ValueError(f"backend output {name} contains non-finite values")
        return value

    def _fail(self, agent_count: int, cause: Exception):
        """Mark the runner permanently failed and raise."""
        self._failure = BatchInferenceError(
            self.model_id, agent_count, str(cause), device=self.device.name
        )
        self._decided = {}

        if self._metrics:
            self._metrics.record_failure(agent_count)

        logger.error(
            "Batch inference failed",
            model_id=self.model_id,
            device=self.device.name,
            agent_count=agent_count,
            error=str(cause),
        )
        raise self._failure from cause
