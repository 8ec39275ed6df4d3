"""
Prometheus metrics for KeyAuth services.
"""

import threading
import time
from contextlib import contextmanager
from typing import Any, Dict, Optional, Sequence, Tuple, Type, Union

from prometheus_client import CollectorRegistry, Counter, Histogram, Info, generate_latest

MetricType = Union[Type[Counter], Type[Histogram]]

# name -> (type, help, label names)
COMMON_METRICS: Dict[str, Tuple[MetricType, str, Sequence[str]]] = {
    "http_requests_total": (Counter, "Total HTTP requests", ("method", "endpoint", "status_code")),
    "http_request_duration_seconds": (Histogram, "HTTP request duration in seconds", ("method", "endpoint")),
    "health_check_total": (Counter, "Total health check requests", ("status",)),
    "errors_total": (Counter, "Total errors by code", ("error_type", "service")),
}

AUTH_METRICS: Dict[str, Tuple[MetricType, str, Sequence[str]]] = {
    "challenges_issued_total": (Counter, "Total challenges issued", ()),
    "challenges_swept_total": (Counter, "Total expired challenges removed by the sweeper", ()),
    "registrations_total": (Counter, "Total identifiers registered on first challenge", ()),
    "authentication_attempts_total": (Counter, "Total authentication attempts by outcome", ("outcome",)),
    "authentication_duration_seconds": (Histogram, "Authenticate handling duration in seconds", ()),
    "token_validations_total": (Counter, "Total session token validations by status", ("status",)),
}

SERVICE_METRICS = {
    "auth": AUTH_METRICS,
}


class MetricsCollector:
    """Metrics for one service instance.

    Each collector owns its registry so several service instances (one per
    test, for example) can coexist in a process without clashing.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()

        info = Info("service_info", "Service information", registry=self.registry)
        info.info({"service": service_name, "version": "1.0.0"})
        self._metrics["service_info"] = info

        for definitions in (COMMON_METRICS, SERVICE_METRICS.get(service_name, {})):
            for name, (metric_type, documentation, labels) in definitions.items():
                self._metrics[name] = metric_type(name, documentation, labels, registry=self.registry)

    def get_metric(self, name: str):
        return self._metrics.get(name)

    def render(self) -> bytes:
        """Render the registry in Prometheus exposition format."""
        return generate_latest(self.registry)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        self._metrics["http_requests_total"].labels(
            method=method, endpoint=endpoint, status_code=str(status_code)
        ).inc()
        self._metrics["http_request_duration_seconds"].labels(
            method=method, endpoint=endpoint
        ).observe(duration)

    def record_health_check(self, status: str):
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str):
        self._metrics["errors_total"].labels(error_type=error_type, service=self.service_name).inc()

    @contextmanager
    def time_operation(self, metric_name: str, **labels):
        """Observe the duration of the enclosed block on a histogram."""
        start = time.perf_counter()
        try:
            yield
        finally:
            metric = self._metrics.get(metric_name)
            if metric is not None:
                (metric.labels(**labels) if labels else metric).observe(time.perf_counter() - start)

    def increment_counter(self, metric_name: str, amount: float = 1, **labels):
        """Increment a counter; unknown names are ignored."""
        metric = self._metrics.get(metric_name)
        if metric is None:
            return
        with self._lock:
            (metric.labels(**labels) if labels else metric).inc(amount)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    return MetricsCollector(service_name, registry)
