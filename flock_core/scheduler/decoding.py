"""
Action selection from raw model outputs.

Deterministic selection takes the mean of each continuous distribution and
the arg-max of each discrete branch. Stochastic selection samples both from
the process-wide random source. Masked discrete actions are never chosen.
"""

from typing import Optional, Sequence

import numpy as np

from ..utils.rng import RandomSource


def select_continuous(
    mean: np.ndarray,
    log_std: np.ndarray,
    deterministic: bool,
    random_source: RandomSource,
) -> np.ndarray:
    """Pick continuous actions, shape ``(batch, num_continuous)``."""
    if deterministic:
        return mean.astype(np.float32, copy=True)
    noise = random_source.normal(mean.shape)
    return (mean + np.exp(log_std) * noise).astype(np.float32)


def select_discrete(
    logits: np.ndarray,
    branch_sizes: Sequence[int],
    masks: Optional[np.ndarray],
    deterministic: bool,
    random_source: RandomSource,
) -> np.ndarray:
    """Pick one action per discrete branch, shape ``(batch, num_branches)``.

    ``masks`` has the same shape as ``logits``; False marks a disallowed action.
    """
    batch_size = logits.shape[0]
    actions = np.zeros((batch_size, len(branch_sizes)), dtype=np.int32)

    start = 0
    for branch, size in enumerate(branch_sizes):
        end = start + size
        branch_logits = logits[:, start:end].astype(np.float64)
        allowed = masks[:, start:end] if masks is not None else np.ones_like(branch_logits, dtype=bool)
        branch_logits = np.where(allowed, branch_logits, -np.inf)

        if deterministic:
            actions[:, branch] = np.argmax(branch_logits, axis=1)
        else:
            shifted = branch_logits - np.max(branch_logits, axis=1, keepdims=True)
            probs = np.exp(shifted)
            cumulative = np.cumsum(probs, axis=1)
            draws = random_source.uniform((batch_size, 1)) * cumulative[:, -1:]
            chosen = np.sum(cumulative <= draws, axis=1)
            # Float round-off can push the draw past the last allowed action
            last_allowed = size - 1 - np.argmax(allowed[:, ::-1], axis=1)
            actions[:, branch] = np.minimum(chosen, last_allowed)

        start = end

    return actions
