"""Tests for model assets."""

import numpy as np

from flock_core.model import ModelAsset
from flock_core.types import ActionSpec


class TestModelAsset:
    def test_random_is_valid(self, model):
        assert model.validate() == []
        assert model.num_hidden_layers == 1
        assert model.input_size == 4

    def test_recurrent_input_size(self, recurrent_model):
        assert recurrent_model.validate() == []
        assert recurrent_model.input_size == 7
        assert recurrent_model.parameters["memory/weight"].shape == (8, 3)

    def test_parameters_are_float32(self):
        spec = ActionSpec.make_continuous(1)
        asset = ModelAsset("tiny", {"continuous/weight": np.ones((2, 1), dtype=np.float64)}, 2, spec)
        assert asset.parameters["continuous/weight"].dtype == np.float32

    def test_model_id_is_content_hash(self, mixed_spec):
        a = ModelAsset.random("walker", 4, mixed_spec, seed=1)
        b = ModelAsset.random("walker", 4, mixed_spec, seed=1)
        c = ModelAsset.random("walker", 4, mixed_spec, seed=2)
        assert a.model_id == b.model_id
        assert a.model_id != c.model_id
        assert a.model_id.startswith("walker:")

    def test_model_id_depends_on_name(self, mixed_spec):
        a = ModelAsset.random("walker", 4, mixed_spec, seed=1)
        b = ModelAsset.random("crawler", 4, mixed_spec, seed=1)
        assert a.model_id != b.model_id

    def test_hidden_layers_order(self, mixed_spec):
        asset = ModelAsset.random("deep", 4, mixed_spec, hidden_sizes=(8, 6))
        layers = asset.hidden_layers()
        assert [w.shape for w, _ in layers] == [(4, 8), (8, 6)]

    def test_no_hidden_layers(self, continuous_spec):
        asset = ModelAsset.random("linear", 3, continuous_spec, hidden_sizes=())
        assert asset.validate() == []
        assert asset.parameters["continuous/weight"].shape == (3, 2)


class TestModelValidation:
    def test_missing_head(self, model):
        del model.parameters["discrete/bias"]
        errors = model.validate()
        assert any("discrete head is missing" in e for e in errors)

    def test_wrong_input_width(self, mixed_spec):
        asset = ModelAsset.random("walker", 4, mixed_spec, hidden_sizes=(8,))
        asset.observation_size = 5
        errors = asset.validate()
        assert any("input width 5" in e for e in errors)

    def test_missing_log_std(self, model):
        del model.parameters["continuous/log_std"]
        assert any("log_std" in e for e in model.validate())

    def test_wrong_head_size(self, model):
        model.parameters["discrete/weight"] = np.zeros((8, 4), dtype=np.float32)
        assert any("discrete/weight" in e for e in model.validate())


class TestNpzRoundTrip:
    def test_from_npz_bytes(self, recurrent_model, mixed_spec):
        data = recurrent_model.to_npz_bytes()
        loaded = ModelAsset.from_npz_bytes("walker-rnn", data, 4, mixed_spec, memory_size=3)
        assert set(loaded.parameters) == set(recurrent_model.parameters)
        assert loaded.model_id == recurrent_model.model_id
