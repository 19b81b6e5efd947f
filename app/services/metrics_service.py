"""
Prometheus metrics for the platform backend.

Tracks HTTP request counts and latency, database query volume and
governance actions (approvals, slug changes, branch retirements, ...) and
the number of tenants in each subscription tier.
"""

from typing import Dict, Optional
import logging

from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    generate_latest,
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
)

logger = logging.getLogger(__name__)


# Define histogram buckets for response times (in seconds)
RESPONSE_TIME_BUCKETS = (
    0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0
)

http_requests_total = Counter(
    "smartpos_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

http_request_duration_seconds = Histogram(
    "smartpos_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=RESPONSE_TIME_BUCKETS,
)

db_queries_total = Counter(
    "smartpos_db_queries_total",
    "Database queries executed while serving requests",
    ["endpoint"],
)

governance_actions_total = Counter(
    "smartpos_governance_actions_total",
    "Committed lifecycle and governance actions",
    ["action"],
)

lifecycle_errors_total = Counter(
    "smartpos_lifecycle_errors_total",
    "Lifecycle errors returned to callers",
    ["error_type", "reason"],
)

tenants_by_tier = Gauge(
    "smartpos_tenants_by_subscription_tier",
    "Tenants per subscription health tier at the last scrape",
    ["tier"],
)


class MetricsCollector:
    """Thin facade over the module-level collectors used by the middleware."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or REGISTRY

    def record_request(
        self,
        method: str,
        endpoint: str,
        status_code: int,
        duration_seconds: float,
        db_query_count: int = 0
    ):
        http_requests_total.labels(method=method, endpoint=endpoint, status_code=str(status_code)).inc()
        http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(duration_seconds)
        if db_query_count:
            db_queries_total.labels(endpoint=endpoint).inc(db_query_count)

    def record_error(self, error_type: str, reason: str):
        lifecycle_errors_total.labels(error_type=error_type, reason=reason).inc()

    def record_subscription_summary(self, summary: Dict[str, int]):
        """Publish per-tier tenant counts, as computed by SubscriptionService.summarize."""
        for tier, count in summary.items():
            tenants_by_tier.labels(tier=tier).set(count)

    def get_prometheus_metrics(self) -> bytes:
        return generate_latest(self.registry)

    def get_prometheus_content_type(self) -> str:
        return CONTENT_TYPE_LATEST


metrics_collector = MetricsCollector()
