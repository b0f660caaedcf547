"""Tests for error hierarchy."""

import pytest
from flock_core.errors import (
    BackendUnavailableError, BatchInferenceError, ConfigurationError, FlockError,
    ModelLoadError, SchedulerDisposedError, ShapeMismatchError,
    raise_configuration_error, raise_shape_mismatch,
)


class TestFlockError:
    def test_basic_error(self):
        err = FlockError("something broke")
        assert str(err) == "something broke"
        assert err.details == {}

    def test_error_with_details(self):
        err = FlockError("oops", details={"key": "val"})
        assert err.details == {"key": "val"}
        assert "key=val" in str(err)

    def test_all_errors_are_flock_errors(self):
        errors = [
            ShapeMismatchError("observations", 4, 3),
            ModelLoadError("m:1", "bad"),
            BatchInferenceError("m:1", 2, "bad"),
            SchedulerDisposedError("m:1", "run batch"),
            ConfigurationError("field", 1, "2"),
            BackendUnavailableError("COMPUTE_SHADER", "no gpu"),
        ]
        for err in errors:
            assert isinstance(err, FlockError)


class TestShapeMismatchError:
    def test_attributes(self):
        err = ShapeMismatchError("observations", 4, 3, agent_id=7)
        assert err.field == "observations"
        assert err.expected == 4
        assert err.actual == 3
        assert err.agent_id == 7
        assert "agent 7" in str(err)

    def test_without_agent(self):
        err = ShapeMismatchError("observation_spec", 4, 5)
        assert err.agent_id is None
        assert "agent" not in err.message


class TestModelLoadError:
    def test_reason(self):
        err = ModelLoadError("walker:abc", "hidden_0 is incomplete", backend="numpy")
        assert err.model_id == "walker:abc"
        assert err.reason == "hidden_0 is incomplete"
        assert err.details["backend"] == "numpy"
        assert "walker:abc" in str(err)


class TestBatchInferenceError:
    def test_agent_count(self):
        err = BatchInferenceError("walker:abc", 12, "device lost")
        assert err.agent_count == 12
        assert "12 agents" in str(err)
        assert "device lost" in str(err)


class TestSchedulerDisposedError:
    def test_operation(self):
        err = SchedulerDisposedError("walker:abc", "buffer observation")
        assert err.operation == "buffer observation"
        assert "disposed" in str(err)


class TestBackendUnavailableError:
    def test_device(self):
        err = BackendUnavailableError("PIXEL_SHADER", "legacy backends are disabled")
        assert err.device == "PIXEL_SHADER"
        assert err.reason == "legacy backends are disabled"


class TestConvenienceFunctions:
    def test_raise_shape_mismatch_adds_suggestion(self):
        with pytest.raises(ShapeMismatchError) as exc_info:
            raise_shape_mismatch("observations[0]", (4,), (3,), agent_id=1)
        assert "ObservationSpec" in exc_info.value.details["suggestion"]

    def test_raise_shape_mismatch_mask_suggestion(self):
        with pytest.raises(ShapeMismatchError) as exc_info:
            raise_shape_mismatch("action_mask", (5,), (4,))
        assert "discrete branch" in exc_info.value.details["suggestion"]

    def test_raise_shape_mismatch_keeps_explicit_suggestion(self):
        with pytest.raises(ShapeMismatchError) as exc_info:
            raise_shape_mismatch("observations", 4, 3, suggestion="resize the sensor")
        assert exc_info.value.details["suggestion"] == "resize the sensor"

    def test_raise_configuration_error(self):
        with pytest.raises(ConfigurationError) as exc_info:
            raise_configuration_error("default_device", "tpu", "a known inference device")
        assert exc_info.value.field == "default_device"
        assert "suggestion" in exc_info.value.details
