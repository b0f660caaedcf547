"""Tests for core type definitions."""

import numpy as np
import pytest

from flock_core.types import (
    ActionResult,
    ActionSpec,
    AgentObservation,
    InferenceDevice,
    ObservationSpec,
    SchedulerKey,
    as_sensor_tuple,
)


class TestInferenceDevice:
    def test_parse_member(self):
        assert InferenceDevice.parse(InferenceDevice.BURST) is InferenceDevice.BURST

    def test_parse_name(self):
        assert InferenceDevice.parse("Compute-Shader") == InferenceDevice.COMPUTE_SHADER
        assert InferenceDevice.parse(" burst ") == InferenceDevice.BURST

    def test_parse_int(self):
        assert InferenceDevice.parse(3) == InferenceDevice.PIXEL_SHADER
        assert InferenceDevice.parse("0") == InferenceDevice.DEFAULT

    def test_parse_unknown(self):
        with pytest.raises(ValueError):
            InferenceDevice.parse("tpu")
        with pytest.raises(ValueError):
            InferenceDevice.parse(9)

    def test_is_gpu(self):
        assert InferenceDevice.COMPUTE_SHADER.is_gpu
        assert InferenceDevice.PIXEL_SHADER.is_gpu
        assert not InferenceDevice.BURST.is_gpu
        assert not InferenceDevice.DEFAULT.is_gpu


class TestActionSpec:
    def test_continuous(self):
        spec = ActionSpec.make_continuous(3)
        assert spec.num_continuous_actions == 3
        assert spec.num_discrete_actions == 0
        assert not spec.is_empty

    def test_discrete(self):
        spec = ActionSpec.make_discrete(3, 2)
        assert spec.num_discrete_actions == 2
        assert spec.sum_discrete_branches == 5
        assert spec.discrete_branch_sizes == (3, 2)

    def test_branch_list_becomes_tuple(self):
        spec = ActionSpec(discrete_branch_sizes=[2, 2])
        assert spec == ActionSpec.make_discrete(2, 2)
        assert hash(spec) == hash(ActionSpec.make_discrete(2, 2))

    def test_empty(self):
        assert ActionSpec().is_empty

    def test_invalid(self):
        with pytest.raises(ValueError):
            ActionSpec(num_continuous_actions=-1)
        with pytest.raises(ValueError):
            ActionSpec.make_discrete(3, 0)

    def test_to_dict(self):
        assert ActionSpec(1, (2,)).to_dict() == {
            "num_continuous_actions": 1,
            "discrete_branch_sizes": [2],
        }


class TestObservationSpec:
    def test_flat_size(self):
        spec = ObservationSpec(sensor_shapes=((4,), (2, 3)))
        assert spec.num_sensors == 2
        assert spec.flat_size == 10

    def test_vector(self):
        assert ObservationSpec.vector(5).sensor_shapes == ((5,),)

    def test_invalid(self):
        with pytest.raises(ValueError):
            ObservationSpec(sensor_shapes=())
        with pytest.raises(ValueError):
            ObservationSpec(sensor_shapes=((0,),))


class TestAgentObservation:
    def test_copies_input(self):
        values = np.array([1.0, 2.0, 3.0])
        obs = AgentObservation(agent_id=1, observations=(values,))
        values[0] = 99.0
        assert obs.observations[0][0] == 1.0
        assert obs.observations[0].dtype == np.float32

    def test_flatten(self):
        obs = AgentObservation(agent_id=1, observations=(np.ones(2), np.zeros((2, 2))))
        np.testing.assert_array_equal(obs.flatten(), [1, 1, 0, 0, 0, 0])

    def test_mask_is_bool(self):
        obs = AgentObservation(agent_id=1, observations=(np.ones(2),), action_mask=[1, 0, 1])
        assert obs.action_mask.dtype == bool
        assert obs.action_mask.tolist() == [True, False, True]


class TestActionResult:
    def test_empty(self):
        result = ActionResult.empty()
        assert result.is_empty
        assert result.continuous_actions.shape == (0,)
        assert result.discrete_actions.shape == (0,)

    def test_read_only(self):
        result = ActionResult([0.5, -0.5], [2])
        with pytest.raises(ValueError):
            result.continuous_actions[0] = 1.0

    def test_value_equality(self):
        a = ActionResult([0.5, -0.5], [2, 1])
        b = ActionResult(np.array([0.5, -0.5]), np.array([2, 1]))
        assert a == b
        assert hash(a) == hash(b)
        assert a != ActionResult([0.5, -0.5], [2, 0])

    def test_copy_is_independent(self):
        a = ActionResult([0.5], [1])
        b = a.copy()
        assert a == b
        assert a.continuous_actions is not b.continuous_actions

    def test_dtypes(self):
        result = ActionResult([1, 2], [1.0])
        assert result.continuous_actions.dtype == np.float32
        assert result.discrete_actions.dtype == np.int32

    def test_to_dict(self):
        assert ActionResult([0.5], [1]).to_dict() == {
            "continuous_actions": [0.5],
            "discrete_actions": [1],
        }


class TestSchedulerKey:
    def test_equality(self):
        a = SchedulerKey("walker:1", InferenceDevice.BURST, True)
        b = SchedulerKey("walker:1", InferenceDevice.BURST, True)
        assert a == b
        assert len({a, b}) == 1
        assert a != SchedulerKey("walker:1", InferenceDevice.BURST, False)


def test_as_sensor_tuple():
    single = as_sensor_tuple(np.ones(3))
    assert len(single) == 1
    several = as_sensor_tuple([[1.0, 2.0], np.zeros(3)])
    assert len(several) == 2
    assert several[0].shape == (2,)
