"""
Metrics Collection with Prometheus.

Exposes entitlement and usage metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from readmeter.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    FEATURE_KEY = "feature_key"
    TIER = "tier"
    ERROR_TYPE = "error_type"


class EntitlementMetrics:
    """
    Centralized metrics for the entitlements API.

    Covers HTTP traffic, entitlement decisions, usage commits, limit
    catalog administration and storage failures.
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "readmeter_service",
            "Service information",
        )
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "readmeter_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "readmeter_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "readmeter_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Entitlement Metrics
        # ====================================================================
        self.entitlement_checks_total = Counter(
            "readmeter_entitlement_checks_total",
            "Total entitlement checks performed",
            [MetricLabels.FEATURE_KEY, MetricLabels.TIER, "outcome"],
        )

        self.entitlement_check_duration_seconds = Histogram(
            "readmeter_entitlement_check_duration_seconds",
            "Entitlement check duration in seconds",
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5),
        )

        # ====================================================================
        # Usage Metrics
        # ====================================================================
        self.usage_units_total = Counter(
            "readmeter_usage_units_total",
            "Total units committed to the usage ledger",
            [MetricLabels.FEATURE_KEY],
        )

        self.usage_commits_total = Counter(
            "readmeter_usage_commits_total",
            "Total usage commits",
            [MetricLabels.FEATURE_KEY, "success"],
        )

        # ====================================================================
        # Limit Catalog Metrics
        # ====================================================================
        self.limit_updates_total = Counter(
            "readmeter_limit_updates_total",
            "Total feature limit rows written by administrators",
            [MetricLabels.TIER],
        )

        # ====================================================================
        # Database Metrics
        # ====================================================================
        self.db_queries_total = Counter(
            "readmeter_db_queries_total",
            "Total database queries",
            [MetricLabels.OPERATION, "success"],
        )

        self.db_query_duration_seconds = Histogram(
            "readmeter_db_query_duration_seconds",
            "Database query duration in seconds",
            [MetricLabels.OPERATION],
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "readmeter_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_entitlement_check(
        self, feature_key: str, tier: str, outcome: str, duration: float
    ) -> None:
        """Record entitlement check metrics. Outcome is approved or a denial reason."""
        self.entitlement_checks_total.labels(
            feature_key=feature_key, tier=tier, outcome=outcome
        ).inc()
        self.entitlement_check_duration_seconds.observe(duration)

    def record_usage_commit(self, feature_key: str, success: bool, units: int) -> None:
        """Record usage commit metrics."""
        self.usage_commits_total.labels(feature_key=feature_key, success=str(success)).inc()
        if success:
            self.usage_units_total.labels(feature_key=feature_key).inc(units)

    def record_limit_update(self, tier: str, count: int = 1) -> None:
        """Record admin limit writes."""
        self.limit_updates_total.labels(tier=tier).inc(count)

    def record_db_query(self, operation: str, success: bool, duration: float) -> None:
        """Record database query metrics."""
        self.db_queries_total.labels(operation=operation, success=str(success)).inc()
        self.db_query_duration_seconds.labels(operation=operation).observe(duration)

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = EntitlementMetrics()

