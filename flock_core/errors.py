"""
Error Definitions for Flock

This module defines the exception classes raised by the inference scheduler,
its registry, the decision requesters and the backend adapters.
"""

from typing import Any, Dict, Optional


class FlockError(Exception):
    """Base exception class for all Flock errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ShapeMismatchError(FlockError):
    """Raised when a submitted observation does not match the behavior spec."""

    def __init__(self, field: str, expected: Any, actual: Any, agent_id: Optional[int] = None,
                 **details):
        if agent_id is not None:
            message = f"Shape mismatch for agent {agent_id} in {field}: expected {expected}, got {actual}"
        else:
            message = f"Shape mismatch in {field}: expected {expected}, got {actual}"

        super().__init__(
            message,
            {"field": field, "expected": expected, "actual": actual, "agent_id": agent_id, **details},
        )
        self.field = field
        self.expected = expected
        self.actual = actual
        self.agent_id = agent_id


class ModelLoadError(FlockError):
    """Raised when a model cannot be loaded into a backend."""

    def __init__(self, model_id: str, reason: str, **details):
        message = f"Failed to load model {model_id}: {reason}"

        super().__init__(message, {"model_id": model_id, "reason": reason, **details})
        self.model_id = model_id
        self.reason = reason


class BatchInferenceError(FlockError):
    """Raised when a batched forward pass fails. Fatal to the scheduler."""

    def __init__(self, model_id: str, agent_count: int, reason: str, **details):
        message = f"Batch inference failed for model {model_id} ({agent_count} agents): {reason}"

        super().__init__(
            message, {"model_id": model_id, "agent_count": agent_count, "reason": reason, **details}
        )
        self.model_id = model_id
        self.agent_count = agent_count
        self.reason = reason


class SchedulerDisposedError(FlockError):
    """Raised when work is handed to a scheduler after disposal started."""

    def __init__(self, model_id: str, operation: str, **details):
        message = f"Scheduler for model {model_id} is disposed; cannot {operation}"

        super().__init__(message, {"model_id": model_id, "operation": operation, **details})
        self.model_id = model_id
        self.operation = operation


class ConfigurationError(FlockError):
    """Raised when configuration is invalid or inconsistent."""

    def __init__(self, field: str, value: Any, expected: str, **details):
        message = f"Invalid configuration for {field}: got {value}, expected {expected}"

        super().__init__(message, {"field": field, "value": value, "expected": expected, **details})
        self.field = field
        self.value = value
        self.expected = expected


class BackendUnavailableError(FlockError):
    """Raised by a backend adapter when its device cannot be used."""

    def __init__(self, device: str, reason: str, **details):
        message = f"Backend unavailable ({device}): {reason}"

        super().__init__(message, {"device": device, "reason": reason, **details})
        self.device = device
        self.reason = reason


# Convenience functions for common error patterns


def raise_shape_mismatch(field: str, expected: Any, actual: Any, agent_id: Optional[int] = None,
                         **details):
    """Raise a shape mismatch error with a hint about where the shape comes from."""
    if "suggestion" not in details:
        if field.startswith("observations"):
            details["suggestion"] = "Sensor shapes must match the behavior's ObservationSpec"
        elif field == "action_mask":
            details["suggestion"] = "Mask length must equal the sum of discrete branch sizes"

    raise ShapeMismatchError(field, expected, actual, agent_id=agent_id, **details)


def raise_configuration_error(field: str, value: Any, expected: str, **details):
    """Raise a configuration error with helpful context."""
    suggestions = {
        "default_device": "Use one of: default, compute_shader, burst, pixel_shader",
        "enable_gpu": "Set ENABLE_GPU=true to use GPU inference devices",
        "torch_num_threads": "Set to number of CPU cores or less",
        "log_level": "Use one of DEBUG, INFO, WARNING, ERROR, CRITICAL",
    }

    suggestion = suggestions.get(field.lower())
    if suggestion:
        details["suggestion"] = suggestion

    raise ConfigurationError(field, value, expected, **details)
