"""Configuration Management for Flock

Settings for the shared inference schedulers. The backend part is an
immutable, validated Pydantic settings object; the inference and logging
parts are plain dataclasses validated on construction. Everything can be
loaded from environment variables, optionally layered with a ``.env`` file.
"""

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from .types import InferenceDevice

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("console", "json")
_TRUE_VALUES = {"true", "1", "yes", "on"}


class BackendConfig(BaseSettings):
    """Immutable backend configuration - cannot be modified at runtime."""

    enable_gpu: bool = Field(default=False, description="Allow GPU inference devices")
    torch_num_threads: int = Field(default=1, description="Intra-op threads for the torch backend")
    allow_legacy_backends: bool = Field(
        default=True, description="Allow the legacy pixel-shader device"
    )

    @field_validator("torch_num_threads")
    @classmethod
    def validate_torch_num_threads(cls, v):
        if v < 1:
            raise ValueError("TORCH_NUM_THREADS must be at least 1")
        if v > 256:
            raise ValueError("TORCH_NUM_THREADS must be at most 256")
        return v

    model_config = {"frozen": True}


@dataclass
class InferenceConfig:
    """Defaults for batched inference and action selection."""

    default_device: str = "default"
    deterministic_inference: bool = False
    random_seed: int = 42
    raise_on_shape_mismatch: bool = False
    enable_metrics: bool = True

    def __post_init__(self):
        try:
            InferenceDevice.parse(self.default_device)
        except ValueError:
            raise ValueError(f"Invalid inference device: {self.default_device}") from None

        if self.random_seed < 0:
            raise ValueError("random_seed must be non-negative")

    @property
    def device(self) -> InferenceDevice:
        return InferenceDevice.parse(self.default_device)


@dataclass
class LoggingConfig:
    log_level: str = "INFO"
    log_format: str = "console"
    log_to_file: bool = False
    log_dir: str = "./logs"

    def __post_init__(self):
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {self.log_level}")
        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"Invalid log format: {self.log_format}")
        if self.log_to_file and not self.log_dir:
            raise ValueError("log_dir cannot be empty when log_to_file is enabled")


def read_env_file(env_file: str) -> Dict[str, str]:
    """Parse ``KEY=VALUE`` lines, skipping blanks and comments. Missing file gives {}."""
    path = Path(env_file)
    if not path.exists():
        return {}

    values = {}
    for raw in path.read_text().splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        values[key.strip()] = value.strip()
    return values


class _Env:
    """Typed lookups over a mapping of environment variables."""

    def __init__(self, values: Mapping[str, str]):
        self.values = values

    def get_str(self, key: str, default: str) -> str:
        return self.values.get(key, default)

    def get_bool(self, key: str, default: bool) -> bool:
        if key not in self.values:
            return default
        return self.values[key].strip().lower() in _TRUE_VALUES

    def get_int(self, key: str, default: int) -> int:
        try:
            return int(self.values.get(key, default))
        except ValueError:
            return default


@dataclass
class FlockConfig:
    """Main configuration class for Flock."""

    backend: BackendConfig = field(default_factory=BackendConfig)
    inference: InferenceConfig = field(default_factory=InferenceConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    debug: bool = False

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "FlockConfig":
        """
        Load configuration from environment variables.

        Values from ``env_file`` take precedence over the process environment.
        """
        values = dict(os.environ)
        if env_file:
            values.update(read_env_file(env_file))
        env = _Env(values)

        backend = BackendConfig(
            enable_gpu=env.get_bool("ENABLE_GPU", False),
            torch_num_threads=env.get_int("TORCH_NUM_THREADS", 1),
            allow_legacy_backends=env.get_bool("ALLOW_LEGACY_BACKENDS", True),
        )

        inference = InferenceConfig(
            default_device=env.get_str("INFERENCE_DEVICE", "default"),
            deterministic_inference=env.get_bool("DETERMINISTIC_INFERENCE", False),
            random_seed=env.get_int("RANDOM_SEED", 42),
            raise_on_shape_mismatch=env.get_bool("RAISE_ON_SHAPE_MISMATCH", False),
            enable_metrics=env.get_bool("ENABLE_METRICS", True),
        )

        logging = LoggingConfig(
            log_level=env.get_str("LOG_LEVEL", "INFO").upper(),
            log_format=env.get_str("LOG_FORMAT", "console").lower(),
            log_to_file=env.get_bool("LOG_TO_FILE", False),
            log_dir=env.get_str("LOG_DIR", "./logs"),
        )

        return cls(backend=backend, inference=inference, logging=logging, debug=env.get_bool("DEBUG", False))

    def validate(self) -> List[str]:
        """Return cross-field problems; an empty list means the configuration is usable."""
        errors = []

        device = self.inference.device
        if device.is_gpu and not self.backend.enable_gpu:
            errors.append(f"Default device {device.name} requires ENABLE_GPU=true")

        if device == InferenceDevice.PIXEL_SHADER and not self.backend.allow_legacy_backends:
            errors.append("Default device PIXEL_SHADER is disabled by ALLOW_LEGACY_BACKENDS=false")

        if self.backend.torch_num_threads > (os.cpu_count() or 1) * 4:
            errors.append("torch_num_threads is far above the CPU count")

        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "backend": self.backend.model_dump(),
            "inference": asdict(self.inference),
            "logging": asdict(self.logging),
            "debug": self.debug,
        }

    def __str__(self) -> str:
        return (
            f"FlockConfig(device={self.inference.device.name}, "
            f"deterministic={self.inference.deterministic_inference}, "
            f"gpu={self.backend.enable_gpu})"
        )


# Global configuration instance
_global_config: Optional[FlockConfig] = None


def get_config() -> FlockConfig:
    """Get the global configuration, loading it from the environment on first use."""
    global _global_config
    if _global_config is None:
        _global_config = FlockConfig.from_env()
    return _global_config


def set_config(config: FlockConfig):
    """Replace the global configuration after validating it."""
    global _global_config

    errors = config.validate()
    if errors:
        raise ValueError(f"Configuration validation failed: {errors}")

    _global_config = config


def reset_config():
    global _global_config
    _global_config = None
