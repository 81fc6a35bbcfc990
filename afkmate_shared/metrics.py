"""
Shared metrics configuration for AFKMate Access Layer.
"""

from typing import Dict, Any, Optional

from prometheus_client import Counter, Histogram, Info, CollectorRegistry, generate_latest


class MetricsCollector:
    """Centralized metrics collector for services.

    Each collector owns its registry so several service instances (tests,
    workers) can coexist in one process without duplicate series errors.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None, version: str = "0.1.0"):
        self.service_name = service_name
        self.version = version
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
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
            "version": self.version
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

        self._setup_access_metrics()

    def _setup_access_metrics(self):
        """Set up admission control and token metrics."""
        self._metrics["rate_limit_decisions_total"] = Counter(
            "rate_limit_decisions_total",
            "Rate limit admission decisions",
            ["policy", "outcome", "backend"],
            registry=self.registry
        )

        self._metrics["rate_limit_fallbacks_total"] = Counter(
            "rate_limit_fallbacks_total",
            "Admissions served by the local backend because the distributed store failed",
            ["reason"],
            registry=self.registry
        )

        self._metrics["token_validations_total"] = Counter(
            "token_validations_total",
            "Total token validations",
            ["outcome"],
            registry=self.registry
        )

        self._metrics["llm_requests_total"] = Counter(
            "llm_requests_total",
            "Total LLM collaborator calls",
            ["operation", "status"],
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

    def record_rate_limit_decision(self, policy: str, allowed: bool, backend: str):
        self._metrics["rate_limit_decisions_total"].labels(
            policy=policy,
            outcome="allowed" if allowed else "denied",
            backend=backend
        ).inc()

    def record_rate_limit_fallback(self, reason: str):
        self._metrics["rate_limit_fallbacks_total"].labels(reason=reason).inc()

    def record_token_validation(self, outcome: str):
        self._metrics["token_validations_total"].labels(outcome=outcome).inc()

    def record_llm_request(self, operation: str, status: str):
        self._metrics["llm_requests_total"].labels(operation=operation, status=status).inc()

    def get_sample_value(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        """Read back a sample (used by tests)."""
        return self.registry.get_sample_value(name, labels or {})

    def render(self) -> bytes:
        """Render the registry in Prometheus text exposition format."""
        return generate_latest(self.registry)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None,
                          version: str = "0.1.0") -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry, version=version)
