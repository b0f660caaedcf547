"""
Model Assets

A ``ModelAsset`` is the opaque model reference a host hands to the registry:
a named set of parameter arrays for a small feed-forward policy network plus
the sizes it was exported for. Backends turn it into a ``ModelHandle``.

Parameter layout (weights are ``(in, out)``):

    hidden_{i}/weight, hidden_{i}/bias     tanh layers, input is obs [+ memory]
    continuous/weight, continuous/bias     mean of the continuous actions
    continuous/log_std                     per-action log standard deviation
    discrete/weight, discrete/bias         logits, all branches concatenated
    memory/weight, memory/bias             next recurrent memory (tanh)
"""

import hashlib
import io
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np

from .types import ActionSpec


@dataclass(eq=False)
class ModelAsset:
    """Named policy parameters and the shapes they were exported for."""

    name: str
    parameters: Dict[str, np.ndarray]
    observation_size: int
    action_spec: ActionSpec
    memory_size: int = 0
    _model_id: Optional[str] = field(default=None, init=False, repr=False)

    def __post_init__(self):
        self.parameters = {
            key: np.asarray(value, dtype=np.float32) for key, value in self.parameters.items()
        }

    @property
    def model_id(self) -> str:
        """Name plus a content hash; equal parameters give equal identities."""
        if self._model_id is None:
            digest = hashlib.sha1()
            digest.update(self.name.encode())
            digest.update(f"{self.observation_size}:{self.memory_size}".encode())
            digest.update(repr(self.action_spec.to_dict()).encode())
            for key in sorted(self.parameters):
                value = self.parameters[key]
                digest.update(key.encode())
                digest.update(str(value.shape).encode())
                digest.update(np.ascontiguousarray(value).tobytes())
            self._model_id = f"{self.name}:{digest.hexdigest()[:12]}"
        return self._model_id

    @property
    def num_hidden_layers(self) -> int:
        return sum(1 for key in self.parameters if key.startswith("hidden_") and key.endswith("/weight"))

    @property
    def input_size(self) -> int:
        return self.observation_size + self.memory_size

    def hidden_layers(self) -> List[tuple]:
        """(weight, bias) pairs in evaluation order."""
        return [
            (self.parameters[f"hidden_{i}/weight"], self.parameters[f"hidden_{i}/bias"])
            for i in range(self.num_hidden_layers)
        ]

    def validate(self) -> List[str]:
        """Check that parameter shapes agree with the declared sizes."""
        errors = []
        width = self.input_size

        for i in range(self.num_hidden_layers):
            weight = self.parameters.get(f"hidden_{i}/weight")
            bias = self.parameters.get(f"hidden_{i}/bias")
            if weight is None or bias is None:
                errors.append(f"hidden_{i} is incomplete")
                return errors
            if weight.ndim != 2 or weight.shape[0] != width:
                errors.append(f"hidden_{i}/weight expects input width {width}, has shape {weight.shape}")
                return errors
            if bias.shape != (weight.shape[1],):
                errors.append(f"hidden_{i}/bias has shape {bias.shape}")
            width = weight.shape[1]

        heads = [
            ("continuous", self.action_spec.num_continuous_actions),
            ("discrete", self.action_spec.sum_discrete_branches),
            ("memory", self.memory_size),
        ]
        for head, size in heads:
            if size == 0:
                continue
            weight = self.parameters.get(f"{head}/weight")
            bias = self.parameters.get(f"{head}/bias")
            if weight is None or bias is None:
                errors.append(f"{head} head is missing")
                continue
            if weight.shape != (width, size):
                errors.append(f"{head}/weight expects shape {(width, size)}, has {weight.shape}")
            if bias.shape != (size,):
                errors.append(f"{head}/bias expects shape {(size,)}, has {bias.shape}")

        if self.action_spec.num_continuous_actions:
            log_std = self.parameters.get("continuous/log_std")
            if log_std is None or log_std.shape != (self.action_spec.num_continuous_actions,):
                errors.append("continuous/log_std is missing or has the wrong shape")

        return errors

    def to_npz_bytes(self) -> bytes:
        buffer = io.BytesIO()
        np.savez(buffer, **{key.replace("/", "__"): value for key, value in self.parameters.items()})
        return buffer.getvalue()

    @classmethod
    def from_npz_bytes(
        cls,
        name: str,
        data: bytes,
        observation_size: int,
        action_spec: ActionSpec,
        memory_size: int = 0,
    ) -> "ModelAsset":
        """Read parameters from a numpy ``.npz`` archive."""
        with np.load(io.BytesIO(data), allow_pickle=False) as archive:
            parameters = {key.replace("__", "/"): archive[key] for key in archive.files}
        return cls(
            name=name,
            parameters=parameters,
            observation_size=observation_size,
            action_spec=action_spec,
            memory_size=memory_size,
        )

    @classmethod
    def random(
        cls,
        name: str,
        observation_size: int,
        action_spec: ActionSpec,
        hidden_sizes: Sequence[int] = (32,),
        memory_size: int = 0,
        seed: int = 0,
    ) -> "ModelAsset":
        """Build a randomly initialised policy, for demos and tests."""
        rng = np.random.default_rng(seed)
        parameters: Dict[str, np.ndarray] = {}

        width = observation_size + memory_size
        for i, size in enumerate(hidden_sizes):
            scale = 1.0 / np.sqrt(width)
            parameters[f"hidden_{i}/weight"] = rng.normal(0.0, scale, (width, size))
            parameters[f"hidden_{i}/bias"] = np.zeros(size)
            width = size

        def head(prefix: str, size: int):
            parameters[f"{prefix}/weight"] = rng.normal(0.0, 1.0 / np.sqrt(width), (width, size))
            parameters[f"{prefix}/bias"] = rng.normal(0.0, 0.1, size)

        if action_spec.num_continuous_actions:
            head("continuous", action_spec.num_continuous_actions)
            parameters["continuous/log_std"] = np.full(action_spec.num_continuous_actions, -0.5)
        if action_spec.sum_discrete_branches:
            head("discrete", action_spec.sum_discrete_branches)
        if memory_size:
            head("memory", memory_size)

        return cls(
            name=name,
            parameters=parameters,
            observation_size=observation_size,
            action_spec=action_spec,
            memory_size=memory_size,
        )
