"""
Learned Policy (Decision Requester)

The per-behavior facade the host simulation talks to. A policy validates
each agent's observation, forwards it to the shared model runner and later
reads back that agent's decided action. Policies never own the runner: the
registry creates, shares and disposes it.
"""

from typing import Callable, Optional, Sequence, Set, Union

import numpy as np

from .config import FlockConfig, get_config
from .errors import ShapeMismatchError
from .logging import get_logger
from .model import ModelAsset
from .scheduler.model_runner import ModelRunner
from .scheduler.registry import SchedulerRegistry
from .types import (
    ActionResult,
    ActionSpec,
    AgentObservation,
    InferenceDevice,
    ModelSetEvent,
    ObservationSpec,
    as_sensor_tuple,
)
from .validation import validate_observation

logger = get_logger(__name__)

ModelSetObserver = Callable[[ModelSetEvent], None]
ObservationInput = Union[AgentObservation, np.ndarray, Sequence[np.ndarray]]


class LearnedPolicy:
    """
    Decides actions for the agents of one behavior using a shared model runner.

    Without a model the policy is heuristic-only: submissions are accepted
    and every decision is the empty action.
    """

    def __init__(
        self,
        action_spec: ActionSpec,
        observation_spec: ObservationSpec,
        model: Optional[ModelAsset] = None,
        registry: Optional[SchedulerRegistry] = None,
        device: Optional[InferenceDevice] = None,
        behavior_name: str = "",
        deterministic: Optional[bool] = None,
        actuator_names: Sequence[str] = (),
        observer: Optional[ModelSetObserver] = None,
        config: Optional[FlockConfig] = None,
    ):
        """
        Bind the policy to the shared runner for ``model``.

        Args:
            action_spec: Action spec of the behavior
            observation_spec: Sensor shapes shared by the behavior's agents
            model: Policy network; None for heuristic-only behaviors
            registry: Registry providing the shared runner (required with a model)
            device: Inference device (configured default if None)
            behavior_name: Name of the behavior, for logs and telemetry
            deterministic: Deterministic action selection (configured default if None)
            actuator_names: Actuators of the behavior, for telemetry only
            observer: Called once with a ModelSetEvent on the first submission
            config: Configuration (global config if None)

        Raises:
            ModelLoadError: the shared runner could not be created
        """
        self.config = config or get_config()
        self.action_spec = action_spec
        self.observation_spec = observation_spec
        self.behavior_name = behavior_name
        self.actuator_names = tuple(actuator_names)
        self.observer = observer

        self._runner: Optional[ModelRunner] = None
        if model is not None:
            if registry is None:
                raise ValueError("a SchedulerRegistry is required when a model is given")
            if model.observation_size != observation_spec.flat_size:
                raise ShapeMismatchError(
                    "observation_spec", model.observation_size, observation_spec.flat_size
                )
            self._runner = registry.get_or_create(model, action_spec, device, deterministic)

        self._model_set_sent = False
        self._rejected: Set[int] = set()

    @property
    def runner(self) -> Optional[ModelRunner]:
        return self._runner

    @property
    def deterministic(self) -> bool:
        if self._runner is None:
            return False
        return self._runner.deterministic

    def submit_observation(
        self,
        agent_id: int,
        observation: ObservationInput,
        action_spec: Optional[ActionSpec] = None,
    ) -> bool:
        """
        Queue ``agent_id``'s observation for the next batched decision.

        A rejected observation leaves the agent without an action this step.
        Returns False when the observation was rejected.

        Raises:
            ShapeMismatchError: only when RAISE_ON_SHAPE_MISMATCH is enabled
        """
        self._send_model_set()

        try:
            agent_observation = self._as_agent_observation(agent_id, observation)
            validate_observation(agent_observation, self.observation_spec, self.action_spec, action_spec)
        except ShapeMismatchError as e:
            self._rejected.add(agent_id)
            if self._runner is not None:
                self._runner.discard_observation(agent_id)

            logger.warning(
                "Observation rejected",
                behavior=self.behavior_name,
                agent_id=agent_id,
                field=e.field,
                expected=str(e.expected),
                actual=str(e.actual),
            )
            if self.config.inference.raise_on_shape_mismatch:
                raise
            return False

        self._rejected.discard(agent_id)

        if self._runner is not None:
            self._runner.buffer_observation(agent_id, agent_observation)
        return True

    def decide_action(self, agent_id: int) -> ActionResult:
        """
        Return ``agent_id``'s decision for this step.

        Triggers the shared batch first if it has not run since the last
        submission, so the host needs no separate synchronization call.
        """
        if self._runner is None or agent_id in self._rejected:
            return ActionResult.empty()

        self._runner.run_batch()
        return self._runner.get_action(agent_id)

    def dispose(self):
        """Nothing to release; the shared runner belongs to the registry."""

    def _as_agent_observation(self, agent_id: int, observation: ObservationInput) -> AgentObservation:
        if isinstance(observation, AgentObservation):
            if observation.agent_id != agent_id:
                raise ShapeMismatchError("agent_id", agent_id, observation.agent_id, agent_id=agent_id)
            return observation
        return AgentObservation(agent_id=agent_id, observations=as_sensor_tuple(observation))

    def _send_model_set(self):
        if self._model_set_sent or self.observer is None or self._runner is None:
            return
        self._model_set_sent = True

        event = ModelSetEvent(
            model_id=self._runner.model_id,
            behavior_name=self.behavior_name,
            device=self._runner.device,
            deterministic=self._runner.deterministic,
            observation_shapes=self.observation_spec.sensor_shapes,
            action_spec=self.action_spec,
            actuator_names=self.actuator_names,
        )

        try:
            self.observer(event)
        except Exception as e:
            logger.warning("Model-set observer failed", behavior=self.behavior_name, error=str(e))
