"""
Structured Logging for Flock

structlog renders key/value events on top of the standard logging module.
Each record is stamped with the configured inference defaults and with the
calling thread's trace: a short correlation id plus the stack of operations
entered through ``trace_operation``.
"""

import json
import logging
import logging.handlers
import sys
import threading
import time
import uuid
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

from .config import FlockConfig, get_config

_trace = threading.local()

# Attributes every LogRecord carries; anything else was passed as context
_RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "taskName"}
_STAMPED_ATTRS = {"default_device", "deterministic", "correlation_id", "operation_depth", "current_operation"}


class CorrelationContext:
    """Per-thread correlation id and stack of traced operations."""

    @staticmethod
    def _operations() -> List[str]:
        if not hasattr(_trace, "operations"):
            _trace.operations = []
        return _trace.operations

    @staticmethod
    def get_correlation_id() -> str:
        if getattr(_trace, "correlation_id", None) is None:
            _trace.correlation_id = uuid.uuid4().hex[:8]
        return _trace.correlation_id

    @staticmethod
    def set_correlation_id(correlation_id: str):
        _trace.correlation_id = correlation_id

    @staticmethod
    def clear_correlation_id():
        _trace.correlation_id = None

    @staticmethod
    def push_operation(operation_name: str):
        CorrelationContext._operations().append(operation_name)

    @staticmethod
    def pop_operation() -> Optional[str]:
        operations = CorrelationContext._operations()
        return operations.pop() if operations else None

    @staticmethod
    def get_trace_context() -> Dict[str, Any]:
        operations = CorrelationContext._operations()
        return {
            "correlation_id": CorrelationContext.get_correlation_id(),
            "thread_id": threading.get_ident(),
            "operation_stack": list(operations),
            "depth": len(operations),
        }


def trace_operation(operation_name: str):
    """Log start, completion and failure of the wrapped call as one traced operation."""

    def decorator(func):
        logger = get_logger(f"flock.trace.{func.__module__}")

        @wraps(func)
        def wrapper(*args, **kwargs):
            context = CorrelationContext.get_trace_context()
            fields = {"operation": operation_name, "function": func.__qualname__, **context}

            CorrelationContext.push_operation(operation_name)
            started = time.perf_counter()
            logger.debug("Operation started", **fields)
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    "Operation failed",
                    duration_seconds=time.perf_counter() - started,
                    error=str(e),
                    **fields,
                )
                raise
            finally:
                CorrelationContext.pop_operation()

            logger.debug("Operation completed", duration_seconds=time.perf_counter() - started, **fields)
            return result

        return wrapper

    return decorator


class InferenceAwareFormatter(logging.Formatter):
    """Stamps the inference defaults and the thread's trace onto each record."""

    def stamp(self, record: logging.LogRecord):
        inference = get_config().inference
        trace = CorrelationContext.get_trace_context()

        record.default_device = inference.device.name
        record.deterministic = inference.deterministic_inference
        record.correlation_id = trace["correlation_id"]
        record.operation_depth = trace["depth"]
        record.current_operation = trace["operation_stack"][-1] if trace["depth"] else None

    def format(self, record: logging.LogRecord) -> str:
        self.stamp(record)
        return super().format(record)


class JSONFormatter(InferenceAwareFormatter):
    """One JSON object per record, for log shipping."""

    def format(self, record: logging.LogRecord) -> str:
        self.stamp(record)

        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
            "correlation": {
                "correlation_id": record.correlation_id,
                "operation_depth": record.operation_depth,
                "current_operation": record.current_operation,
            },
            "inference": {
                "default_device": record.default_device,
                "deterministic": record.deterministic,
            },
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        entry.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in _STAMPED_ATTRS
        )
        return json.dumps(entry, default=str)


class ConsoleFormatter(InferenceAwareFormatter):
    """Compact colored lines for terminals, indented by trace depth."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    DIM = "\033[90m"
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        self.stamp(record)

        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        color = self.LEVEL_COLORS.get(record.levelno, "")
        operation = f"[{record.current_operation}] " if record.current_operation else ""

        line = (
            f"{self.DIM}{clock} [{record.correlation_id}]{self.RESET} "
            f"{color}{record.levelname:8}{self.RESET} {record.name:24} "
            f"{'  ' * record.operation_depth}{self.DIM}{operation}{self.RESET}{record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _renderer(config: FlockConfig):
    if config.logging.log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=False, pad_event=0)


def _file_handler(config: FlockConfig) -> logging.Handler:
    log_dir = Path(config.logging.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")

    handler = logging.handlers.RotatingFileHandler(
        log_dir / f"flock_{stamp}.log", maxBytes=10 * 1024 * 1024, backupCount=5
    )
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging():
    """Configure structlog and the root logger from the current configuration."""
    config = get_config()

    structlog.configure(
        processors=[
            # time, level and logger name come from the stdlib formatters
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            _renderer(config),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.setLevel(config.logging.log_level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(JSONFormatter() if config.logging.log_format == "json" else ConsoleFormatter())
    root.addHandler(console)

    if config.logging.log_to_file:
        root.addHandler(_file_handler(config))

    logging.getLogger("flock.setup").debug(
        "Logging initialized: %s, log_level=%s, log_format=%s",
        config,
        config.logging.log_level,
        config.logging.log_format,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


# Initialize logging on module import
setup_logging()
