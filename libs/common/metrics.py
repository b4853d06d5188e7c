"""Metrics collection for the embedding service.

Provides a thin convenience wrapper around ``prometheus_client`` so the service
consistently records HTTP, embedding, and model lifecycle metrics.

Design notes
- Metrics and labels are predeclared to avoid cardinality explosions
- A single registry is kept per collector (can be injected for testing)
"""

from typing import Optional
from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry, generate_latest
import structlog

logger = structlog.get_logger("metrics")


class MetricsCollector:
    """Centralized metrics collection.

    Parameters
    - service_name: Logical name used for scoping/labels if desired
    - registry: Optional custom ``CollectorRegistry`` (e.g. for testing)
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()

        self.request_count = Counter(
            'http_requests_total',
            'Total HTTP requests',
            ['method', 'endpoint', 'status'],
            registry=self.registry
        )

        self.request_duration = Histogram(
            'http_request_duration_seconds',
            'HTTP request duration',
            ['method', 'endpoint'],
            registry=self.registry
        )

        self.embedding_requests = Counter(
            'ml_embedding_requests_total',
            'Total embedding generation requests',
            ['model_name', 'operation'],
            registry=self.registry
        )

        self.embedding_duration = Histogram(
            'ml_embedding_duration_seconds',
            'Embedding generation duration',
            ['model_name', 'operation'],
            registry=self.registry
        )

        self.embedding_texts = Counter(
            'ml_embedding_texts_total',
            'Total texts embedded',
            ['model_name'],
            registry=self.registry
        )

        self.embedding_failures = Counter(
            'ml_embedding_failures_total',
            'Embedding requests that failed, by error type',
            ['operation', 'error_type'],
            registry=self.registry
        )

        self.inferences_in_flight = Gauge(
            'ml_inferences_in_flight',
            'Number of inference calls currently executing',
            registry=self.registry
        )

        self.model_loaded = Gauge(
            'ml_model_loaded',
            'Whether the embedding model is loaded (1) or still loading (0)',
            ['model_name'],
            registry=self.registry
        )

    def record_http_request(
        self,
        method: str,
        endpoint: str,
        status: int,
        duration: float
    ) -> None:
        """Record HTTP request metrics.

        duration is expected in seconds to match Prometheus histogram units.
        """
        self.request_count.labels(method=method, endpoint=endpoint, status=status).inc()
        self.request_duration.labels(method=method, endpoint=endpoint).observe(duration)

    def record_embedding(
        self,
        model_name: str,
        operation: str,
        duration: float,
        text_count: int = 1
    ) -> None:
        """Record a successful embedding computation."""
        self.embedding_requests.labels(model_name=model_name, operation=operation).inc()
        self.embedding_duration.labels(model_name=model_name, operation=operation).observe(duration)
        self.embedding_texts.labels(model_name=model_name).inc(text_count)

    def record_embedding_failure(self, operation: str, error_type: str) -> None:
        """Record a failed embedding request."""
        self.embedding_failures.labels(operation=operation, error_type=error_type).inc()

    def set_model_loaded(self, model_name: str, loaded: bool) -> None:
        """Set the model readiness gauge."""
        self.model_loaded.labels(model_name=model_name).set(1 if loaded else 0)

    def get_metrics(self) -> str:
        """Get metrics in Prometheus exposition format for scraping."""
        return generate_latest(self.registry).decode('utf-8')


# Global metrics collector instance
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector(service_name: str) -> MetricsCollector:
    """Get or create metrics collector for a service.

    Returns a process‑wide singleton to avoid duplicate collectors/labels.
    """
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector(service_name)
        logger.debug("Metrics collector created", service=service_name)
    return _metrics_collector
