"""Tests for action selection."""

import numpy as np

from flock_core.scheduler.decoding import select_continuous, select_discrete
from flock_core.utils.rng import RandomSource


class TestSelectContinuous:
    def test_deterministic_is_mean(self):
        mean = np.array([[0.5, -0.5], [1.0, 2.0]])
        log_std = np.zeros((2, 2))
        actions = select_continuous(mean, log_std, True, RandomSource(0))
        np.testing.assert_array_equal(actions, mean.astype(np.float32))
        assert actions.dtype == np.float32

    def test_stochastic_is_seeded(self):
        mean = np.zeros((3, 2))
        log_std = np.zeros((3, 2))
        a = select_continuous(mean, log_std, False, RandomSource(5))
        b = select_continuous(mean, log_std, False, RandomSource(5))
        np.testing.assert_array_equal(a, b)
        assert not np.allclose(a, 0.0)

    def test_small_std_stays_near_mean(self):
        mean = np.full((4, 1), 3.0)
        log_std = np.full((4, 1), -20.0)
        actions = select_continuous(mean, log_std, False, RandomSource(1))
        np.testing.assert_allclose(actions, mean, atol=1e-4)


class TestSelectDiscrete:
    def test_argmax_per_branch(self):
        logits = np.array([[0.1, 0.9, 0.0, 2.0, 1.0]])
        actions = select_discrete(logits, (3, 2), None, True, RandomSource(0))
        assert actions.tolist() == [[1, 0]]
        assert actions.dtype == np.int32

    def test_mask_excludes_best(self):
        logits = np.array([[0.1, 0.9, 0.0, 2.0, 1.0]])
        mask = np.array([[True, False, True, True, True]])
        actions = select_discrete(logits, (3, 2), mask, True, RandomSource(0))
        assert actions.tolist() == [[0, 0]]

    def test_sampling_respects_mask(self):
        logits = np.zeros((200, 3))
        mask = np.tile([False, True, False], (200, 1))
        actions = select_discrete(logits, (3,), mask, False, RandomSource(3))
        assert np.all(actions[:, 0] == 1)

    def test_sampling_follows_probabilities(self):
        logits = np.tile([0.0, 10.0], (500, 1))
        actions = select_discrete(logits, (2,), None, False, RandomSource(4))
        assert np.mean(actions[:, 0] == 1) > 0.95

    def test_sampling_covers_branch(self):
        logits = np.zeros((600, 3))
        actions = select_discrete(logits, (3,), None, False, RandomSource(8))
        assert set(actions[:, 0].tolist()) == {0, 1, 2}

    def test_no_branches(self):
        actions = select_discrete(np.zeros((2, 0)), (), None, True, RandomSource(0))
        assert actions.shape == (2, 0)
