"""Metrics sinks: an in-memory collector and a Prometheus pushgateway sink."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, push_to_gateway

from .config import ObservabilityConfig

DEFAULT_BUCKETS: Tuple[float, ...] = (0.01, 0.1, 0.25, 0.5, 1, 2.5, 5, 10)

Labels = Optional[Mapping[str, str]]


class MetricsSink(Protocol):
    def register_counter(self, name: str, documentation: str, labelnames: Sequence[str] = ()) -> None:
        ...

    def register_gauge(self, name: str, documentation: str, labelnames: Sequence[str] = ()) -> None:
        ...

    def register_histogram(self, name: str, documentation: str, buckets: Sequence[float] = DEFAULT_BUCKETS) -> None:
        ...

    def inc(self, name: str, labels: Labels = None, amount: float = 1.0) -> None:
        ...

    def set(self, name: str, value: float, labels: Labels = None) -> None:
        ...

    def observe(self, name: str, value: float, labels: Labels = None) -> None:
        ...

    def push(self) -> None:
        ...


def _label_key(labels: Labels) -> Tuple[Tuple[str, str], ...]:
    return tuple(sorted((labels or {}).items()))


@dataclass
class TelemetryCollector:
    """In-process sink keeping every update; ``push`` only counts calls."""

    config: ObservabilityConfig = field(default_factory=ObservabilityConfig)
    metrics: List[Dict[str, object]] = field(default_factory=list)
    registered: Dict[str, str] = field(default_factory=dict)
    values: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], float] = field(default_factory=lambda: defaultdict(float))
    observations: Dict[str, List[float]] = field(default_factory=lambda: defaultdict(list))
    pushes: int = 0

    def register_counter(self, name: str, documentation: str, labelnames: Sequence[str] = ()) -> None:
        self.registered.setdefault(name, "counter")

    def register_gauge(self, name: str, documentation: str, labelnames: Sequence[str] = ()) -> None:
        self.registered.setdefault(name, "gauge")

    def register_histogram(self, name: str, documentation: str, buckets: Sequence[float] = DEFAULT_BUCKETS) -> None:
        self.registered.setdefault(name, "histogram")

    def _require(self, name: str) -> None:
        if name not in self.registered:
            raise KeyError(f"metric {name} is not registered")

    def inc(self, name: str, labels: Labels = None, amount: float = 1.0) -> None:
        self._require(name)
        self.values[(name, _label_key(labels))] += amount
        self.emit_metric(name, amount, labels)

    def set(self, name: str, value: float, labels: Labels = None) -> None:
        self._require(name)
        self.values[(name, _label_key(labels))] = value
        self.emit_metric(name, value, labels)

    def observe(self, name: str, value: float, labels: Labels = None) -> None:
        self._require(name)
        self.observations[name].append(value)
        self.emit_metric(name, value, labels)

    def emit_metric(self, name: str, value: float, labels: Labels = None) -> None:
        payload = {
            "name": name,
            "namespace": self.config.metrics_namespace,
            "value": value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **(labels or {}),
        }
        self.metrics.append(payload)

    def value(self, name: str, **labels: str) -> float:
        return self.values.get((name, _label_key(labels)), 0.0)

    def total(self, name: str) -> float:
        return sum(value for (metric, _), value in self.values.items() if metric == name)

    def push(self) -> None:
        self.pushes += 1


class PrometheusSink:
    """Sink backed by a ``prometheus_client`` registry, pushed to a pushgateway."""

    def __init__(
        self,
        namespace: str = "fleet_check",
        *,
        registry: Optional[CollectorRegistry] = None,
        gateway_url: Optional[str] = None,
        job: str = "fleet-check",
        grouping_key: Optional[Dict[str, str]] = None,
    ) -> None:
        self.namespace = namespace
        self.registry = registry or CollectorRegistry()
        self.gateway_url = gateway_url
        self.job = job
        self.grouping_key = dict(grouping_key or {})
        self._metrics: Dict[str, object] = {}

    @classmethod
    def from_config(cls, config: ObservabilityConfig, **grouping_key: str) -> "PrometheusSink":
        return cls(
            config.metrics_namespace,
            gateway_url=config.pushgateway_url,
            job=config.job_name,
            grouping_key=grouping_key,
        )

    def register_counter(self, name: str, documentation: str, labelnames: Sequence[str] = ()) -> None:
        if name not in self._metrics:
            self._metrics[name] = Counter(
                name, documentation, labelnames=list(labelnames), namespace=self.namespace, registry=self.registry
            )

    def register_gauge(self, name: str, documentation: str, labelnames: Sequence[str] = ()) -> None:
        if name not in self._metrics:
            self._metrics[name] = Gauge(
                name, documentation, labelnames=list(labelnames), namespace=self.namespace, registry=self.registry
            )

    def register_histogram(self, name: str, documentation: str, buckets: Sequence[float] = DEFAULT_BUCKETS) -> None:
        if name not in self._metrics:
            self._metrics[name] = Histogram(
                name, documentation, buckets=list(buckets), namespace=self.namespace, registry=self.registry
            )

    def _metric(self, name: str, labels: Labels):
        try:
            metric = self._metrics[name]
        except KeyError:
            raise KeyError(f"metric {name} is not registered") from None
        return metric.labels(**labels) if labels else metric

    def inc(self, name: str, labels: Labels = None, amount: float = 1.0) -> None:
        self._metric(name, labels).inc(amount)

    def set(self, name: str, value: float, labels: Labels = None) -> None:
        self._metric(name, labels).set(value)

    def observe(self, name: str, value: float, labels: Labels = None) -> None:
        self._metric(name, labels).observe(value)

    def push(self) -> None:
        if not self.gateway_url:
            return
        push_to_gateway(self.gateway_url, job=self.job, registry=self.registry, grouping_key=self.grouping_key)
