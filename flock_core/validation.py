"""
Observation validation against a behavior's fixed specs.
"""

from typing import Optional

import numpy as np

from .errors import raise_shape_mismatch
from .types import ActionSpec, AgentObservation, ObservationSpec


def validate_observation(
    observation: AgentObservation,
    observation_spec: ObservationSpec,
    action_spec: ActionSpec,
    submitted_action_spec: Optional[ActionSpec] = None,
):
    """
    Check an observation against the behavior's observation and action specs.

    Raises:
        ShapeMismatchError: on the first inconsistency found
    """
    agent_id = observation.agent_id

    if submitted_action_spec is not None and submitted_action_spec != action_spec:
        raise_shape_mismatch(
            "action_spec", action_spec.to_dict(), submitted_action_spec.to_dict(), agent_id=agent_id
        )

    if len(observation.observations) != observation_spec.num_sensors:
        raise_shape_mismatch(
            "observations", observation_spec.num_sensors, len(observation.observations), agent_id=agent_id
        )

    for index, (obs, shape) in enumerate(zip(observation.observations, observation_spec.sensor_shapes)):
        if obs.shape != shape:
            raise_shape_mismatch(f"observations[{index}]", shape, obs.shape, agent_id=agent_id)

    check_finite(observation)
    check_action_mask(observation, action_spec)


def check_finite(observation: AgentObservation):
    """Reject sensor values that are nan or inf."""
    for index, obs in enumerate(observation.observations):
        if not np.all(np.isfinite(obs)):
            raise_shape_mismatch(
                f"observations[{index}]", "finite values", "nan or inf", agent_id=observation.agent_id
            )


def check_action_mask(observation: AgentObservation, action_spec: ActionSpec):
    """Check the mask length and that every discrete branch keeps an allowed action."""
    mask = observation.action_mask
    if mask is None:
        return

    agent_id = observation.agent_id
    if mask.ndim != 1 or mask.size != action_spec.sum_discrete_branches:
        raise_shape_mismatch(
            "action_mask", (action_spec.sum_discrete_branches,), mask.shape, agent_id=agent_id
        )

    start = 0
    for branch, size in enumerate(action_spec.discrete_branch_sizes):
        if not mask[start:start + size].any():
            raise_shape_mismatch(
                "action_mask",
                f"at least one allowed action in branch {branch}",
                "all actions masked",
                agent_id=agent_id,
            )
        start += size
