"""
Metrics Collection for Flock

In-memory counters, gauges, histograms and timers for the shared inference
schedulers: batch sizes, forward-pass latency, buffered observations and
failures. Everything stays in the process unless exported as JSON.
"""

import json
import threading
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Deque, Dict, Optional, Union

import numpy as np

from .logging import get_logger

logger = get_logger(__name__)

Number = Union[int, float]


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class MetricPoint:
    """One recorded value of a metric series."""

    timestamp: datetime
    value: float
    tags: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp.isoformat(), "value": self.value, "tags": self.tags}


@dataclass(frozen=True)
class MetricSummary:
    """Distribution of the values currently held for one series."""

    name: str
    count: int
    min_value: float
    max_value: float
    mean: float
    median: float
    std_dev: float
    p95: float
    p99: float
    first_timestamp: datetime
    last_timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["first_timestamp"] = self.first_timestamp.isoformat()
        data["last_timestamp"] = self.last_timestamp.isoformat()
        return data


class MetricsCollector:
    """
    Thread-safe store of bounded metric series.

    Every recorded value lands as a ``MetricPoint`` in the series of its
    name. Counters and gauges additionally keep their current value;
    histograms and timers keep their raw samples. Timer series are stored
    under ``<name>_duration``.
    """

    def __init__(self, max_points_per_metric: int = 10000):
        self.max_points_per_metric = max_points_per_metric
        self.metrics: Dict[str, Deque[MetricPoint]] = {}
        self.counters: Dict[str, int] = {}
        self.gauges: Dict[str, float] = {}
        self.histograms: Dict[str, Deque[float]] = {}
        self.timers: Dict[str, Deque[float]] = {}

        self._lock = threading.RLock()

    def record_counter(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None):
        """Add ``value`` to a monotonically increasing counter."""
        with self._lock:
            self.counters[name] = self.counters.get(name, 0) + value
            self._append(name, self.counters[name], tags)

    def record_gauge(self, name: str, value: Number, tags: Optional[Dict[str, str]] = None):
        with self._lock:
            self.gauges[name] = float(value)
            self._append(name, value, tags)

    def record_histogram(self, name: str, value: Number, tags: Optional[Dict[str, str]] = None):
        with self._lock:
            self._samples(self.histograms, name).append(float(value))
            self._append(name, value, tags)

    def record_timer(self, name: str, duration_seconds: float, tags: Optional[Dict[str, str]] = None):
        with self._lock:
            self._samples(self.timers, name).append(duration_seconds)
            self._append(f"{name}_duration", duration_seconds, tags)

    def get_metric_summary(self, name: str) -> Optional[MetricSummary]:
        """Summarize the points currently held for ``name``, or None if there are none."""
        with self._lock:
            points = list(self.metrics.get(name, ()))

        if not points:
            return None

        values = np.array([p.value for p in points], dtype=np.float64)
        p95, p99 = np.percentile(values, [95, 99])
        return MetricSummary(
            name=name,
            count=len(values),
            min_value=float(values.min()),
            max_value=float(values.max()),
            mean=float(values.mean()),
            median=float(np.median(values)),
            std_dev=float(values.std(ddof=1)) if len(values) > 1 else 0.0,
            p95=float(p95),
            p99=float(p99),
            first_timestamp=points[0].timestamp,
            last_timestamp=points[-1].timestamp,
        )

    def get_all_summaries(self) -> Dict[str, MetricSummary]:
        with self._lock:
            names = list(self.metrics)
        summaries = {name: self.get_metric_summary(name) for name in names}
        return {name: summary for name, summary in summaries.items() if summary is not None}

    def export_metrics(self, filepath: str):
        """Write every series and its summary to ``filepath`` as JSON."""
        with self._lock:
            series = {name: [p.to_dict() for p in points] for name, points in self.metrics.items()}

        payload = {
            "exported_at": _now().isoformat(),
            "format_version": "1.0",
            "metrics": series,
            "summaries": {name: s.to_dict() for name, s in self.get_all_summaries().items()},
        }

        path = Path(filepath)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, indent=2))

        logger.info("Metrics exported", filepath=str(path), series=len(series))

    def clear_metrics(self):
        with self._lock:
            for store in (self.metrics, self.counters, self.gauges, self.histograms, self.timers):
                store.clear()

    def _samples(self, store: Dict[str, Deque[float]], name: str) -> Deque[float]:
        if name not in store:
            store[name] = deque(maxlen=self.max_points_per_metric)
        return store[name]

    def _append(self, name: str, value: Number, tags: Optional[Dict[str, str]]):
        if name not in self.metrics:
            self.metrics[name] = deque(maxlen=self.max_points_per_metric)
        self.metrics[name].append(MetricPoint(_now(), float(value), dict(tags or {})))


class InferenceMetricsCollector:
    """Records the metrics of one model runner, tagged with its model and device."""

    def __init__(self, collector: MetricsCollector, model_id: str, device: str):
        self.collector = collector
        self.tags = {"model_id": model_id, "device": device}

    def record_observation_buffered(self):
        self.collector.record_counter("inference.observations_buffered", 1, self.tags)

    def record_batch_processed(self, batch_size: int, duration_seconds: float):
        """Record one forward pass over ``batch_size`` agents."""
        throughput = batch_size / duration_seconds if duration_seconds > 0 else 0.0

        self.collector.record_counter("inference.batches", 1, self.tags)
        self.collector.record_histogram("inference.batch_size", batch_size, self.tags)
        self.collector.record_timer("inference.forward", duration_seconds, self.tags)
        self.collector.record_gauge("inference.throughput", throughput, self.tags)

    def record_failure(self, batch_size: int):
        self.collector.record_counter(
            "inference.failures", 1, {**self.tags, "batch_size": str(batch_size)}
        )


# Global metrics collector instance
_global_collector: Optional[MetricsCollector] = None
_global_lock = threading.Lock()


def get_metrics_collector() -> MetricsCollector:
    """Get the process-wide metrics collector."""
    global _global_collector
    with _global_lock:
        if _global_collector is None:
            _global_collector = MetricsCollector()
        return _global_collector


def reset_metrics_collector():
    global _global_collector
    with _global_lock:
        _global_collector = None
