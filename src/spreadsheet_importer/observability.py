"""
Observability and metrics hooks for monitoring import runs.

Hooks receive run events (start, batch boundaries, row failures, completion)
and metrics (row counters, run duration). A manager is passed explicitly to
the pipeline; there is no global hook registry.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class MetricType(Enum):
    """Types of metrics that can be emitted."""
    COUNTER = "counter"  # Monotonically increasing count
    GAUGE = "gauge"  # Point-in-time value
    TIMER = "timer"  # Duration measurement


class EventType(Enum):
    """Types of events that can be emitted."""
    RUN_START = "run_start"
    RUN_COMPLETE = "run_complete"
    RUN_ABORTED = "run_aborted"
    BATCH_COMPLETE = "batch_complete"
    ROW_FAILED = "row_failed"


@dataclass
class MetricEvent:
    """Represents a metric event."""
    metric_type: MetricType
    name: str
    value: float
    timestamp: float = field(default_factory=time.time)
    tags: Dict[str, str] = field(default_factory=dict)

    def __str__(self) -> str:
        tags_str = ",".join(f"{k}={v}" for k, v in self.tags.items())
        return f"{self.name}:{self.value}|{self.metric_type.value}|{tags_str}"


@dataclass
class Event:
    """Represents a pipeline event."""
    event_type: EventType
    timestamp: float = field(default_factory=time.time)
    file_name: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        parts = [self.event_type.value]
        if self.file_name:
            parts.append(f"file={self.file_name}")
        if self.details:
            parts.append(",".join(f"{k}={v}" for k, v in self.details.items()))
        return " ".join(parts)


class ObservabilityHook:
    """Base class for observability hooks."""

    def on_metric(self, metric: MetricEvent) -> None:
        """Called when a metric is emitted."""
        pass

    def on_event(self, event: Event) -> None:
        """Called when an event occurs."""
        pass


class LoggingHook(ObservabilityHook):
    """Hook that logs metrics and events to Python logging."""

    def __init__(self, log_metrics: bool = True, log_events: bool = True):
        self.log_metrics = log_metrics
        self.log_events = log_events

    def on_metric(self, metric: MetricEvent) -> None:
        if self.log_metrics:
            logger.debug(f"METRIC: {metric}")

    def on_event(self, event: Event) -> None:
        if self.log_events:
            if event.event_type is EventType.RUN_ABORTED:
                level = logging.ERROR
            elif event.event_type is EventType.ROW_FAILED:
                level = logging.WARNING
            elif event.event_type is EventType.BATCH_COMPLETE:
                level = logging.DEBUG
            else:
                level = logging.INFO
            logger.log(level, f"EVENT: {event}")


class PrometheusHook(ObservabilityHook):
    """Hook that exports metrics to Prometheus.

    Requires prometheus_client library:
        pip install spreadsheet-importer[prometheus]
    """

    def __init__(self, namespace: str = "spreadsheet_import", registry=None):
        try:
            from prometheus_client import REGISTRY, Counter, Gauge, Histogram
        except ImportError:
            raise ImportError(
                "prometheus_client is required for PrometheusHook. "
                "Install with: pip install prometheus-client"
            )
        self.namespace = namespace
        self.registry = registry if registry is not None else REGISTRY
        self._types = {
            MetricType.COUNTER: Counter,
            MetricType.GAUGE: Gauge,
            MetricType.TIMER: Histogram,
        }
        self._metrics: Dict[str, Any] = {}

    def _get_or_create_metric(self, metric: MetricEvent):
        key = f"{metric.name}_{metric.metric_type.value}"
        if key not in self._metrics:
            metric_class = self._types[metric.metric_type]
            self._metrics[key] = metric_class(
                metric.name,
                f"Spreadsheet import {metric.name}",
                sorted(metric.tags),
                namespace=self.namespace,
                registry=self.registry,
            )
        return self._metrics[key]

    def on_metric(self, metric: MetricEvent) -> None:
        prom_metric = self._get_or_create_metric(metric)
        if metric.tags:
            prom_metric = prom_metric.labels(**metric.tags)

        if metric.metric_type == MetricType.COUNTER:
            prom_metric.inc(metric.value)
        elif metric.metric_type == MetricType.GAUGE:
            prom_metric.set(metric.value)
        elif metric.metric_type == MetricType.TIMER:
            prom_metric.observe(metric.value / 1000)


class ObservabilityManager:
    """Fans metrics and events out to registered hooks.

    A failing hook is logged and never interrupts the import.
    """

    def __init__(self, hooks: Optional[List[ObservabilityHook]] = None):
        self.hooks: List[ObservabilityHook] = list(hooks or [])
        self._timers: Dict[str, float] = {}

    def register_hook(self, hook: ObservabilityHook) -> None:
        """Register an observability hook."""
        self.hooks.append(hook)

    def emit_metric(
        self,
        metric_type: MetricType,
        name: str,
        value: float,
        tags: Optional[Dict[str, str]] = None
    ) -> None:
        """Emit a metric to all registered hooks."""
        metric = MetricEvent(metric_type=metric_type, name=name, value=value, tags=tags or {})
        for hook in self.hooks:
            try:
                hook.on_metric(metric)
            except Exception as e:
                logger.error(f"Error in observability hook: {e}")

    def emit_event(
        self,
        event_type: EventType,
        file_name: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        """Emit an event to all registered hooks."""
        event = Event(event_type=event_type, file_name=file_name, details=details or {})
        for hook in self.hooks:
            try:
                hook.on_event(event)
            except Exception as e:
                logger.error(f"Error in observability hook: {e}")

    def start_timer(self, name: str) -> None:
        """Start a named timer."""
        self._timers[name] = time.time()

    def end_timer(self, name: str, tags: Optional[Dict[str, str]] = None) -> float:
        """End a named timer and emit the duration in milliseconds."""
        if name not in self._timers:
            logger.warning(f"Timer '{name}' was not started")
            return 0.0

        duration = time.time() - self._timers.pop(name)
        self.emit_metric(MetricType.TIMER, name, duration * 1000, tags)
        return duration

    def counter(self, name: str, value: float = 1.0, tags: Optional[Dict[str, str]] = None) -> None:
        """Emit a counter metric."""
        self.emit_metric(MetricType.COUNTER, name, value, tags)

    def gauge(self, name: str, value: float, tags: Optional[Dict[str, str]] = None) -> None:
        """Emit a gauge metric."""
        self.emit_metric(MetricType.GAUGE, name, value, tags)
