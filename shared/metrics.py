"""
Shared metrics configuration for the Flag Gateway.
"""

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Info
from typing import Dict, Any, Optional
import threading


class MetricsCollector:
    """Centralized metrics collector for services.

    Every collector owns its registry so that several service instances (one
    per test, typically) can coexist in a process without clashing on the
    global Prometheus registry.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # HTTP metrics
        self._metrics["http_requests_total"] = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )

        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        self._setup_flag_gateway_metrics()

    def _setup_flag_gateway_metrics(self):
        """Set up flag gateway metrics."""
        self._metrics["flag_cache_lookups_total"] = Counter(
            "flag_cache_lookups_total",
            "Flag cache lookups by outcome",
            ["outcome"],
            registry=self.registry
        )

        self._metrics["flag_cache_entries"] = Gauge(
            "flag_cache_entries",
            "Number of entries held by the flag cache",
            registry=self.registry
        )

        self._metrics["rate_limit_rejections_total"] = Counter(
            "rate_limit_rejections_total",
            "Requests rejected by the rate limiter",
            ["endpoint"],
            registry=self.registry
        )

        self._metrics["origin_resolutions_total"] = Counter(
            "origin_resolutions_total",
            "Origin resolutions by result",
            ["result"],
            registry=self.registry
        )

        self._metrics["origin_resolution_duration_seconds"] = Histogram(
            "origin_resolution_duration_seconds",
            "Origin resolution duration in seconds",
            registry=self.registry
        )

        self._metrics["coalesced_waiters_total"] = Counter(
            "coalesced_waiters_total",
            "Callers that joined an in-flight origin fetch",
            registry=self.registry
        )

        self._metrics["background_refresh_total"] = Counter(
            "background_refresh_total",
            "Background refreshes of stale entries by result",
            ["result"],
            registry=self.registry
        )

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self._metrics["http_request_duration_seconds"].labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

    def record_health_check(self, status: str):
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        metric = self._metrics.get(metric_name)
        if metric is None:
            return
        with self._lock:
            (metric.labels(**labels) if labels else metric).inc()

    def set_gauge(self, metric_name: str, value: float, **labels):
        """Set a gauge metric value."""
        metric = self._metrics.get(metric_name)
        if metric is None:
            return
        with self._lock:
            (metric.labels(**labels) if labels else metric).set(value)

    def observe_histogram(self, metric_name: str, value: float, **labels):
        """Observe a histogram metric."""
        metric = self._metrics.get(metric_name)
        if metric is None:
            return
        with self._lock:
            (metric.labels(**labels) if labels else metric).observe(value)

    def get_sample_value(self, metric_name: str, **labels) -> Optional[float]:
        """Read a sample from the collector's registry (used by health and tests)."""
        return self.registry.get_sample_value(metric_name, labels)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
