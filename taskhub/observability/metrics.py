"""
Prometheus metrics collection.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from taskhub.constants import (
    CIRCUIT_STATE_VALUES,
    METRIC_API_LATENCY,
    METRIC_API_REQUESTS,
    METRIC_CIRCUIT_REJECTIONS,
    METRIC_CIRCUIT_STATE,
    METRIC_CLAIM_RACES_LOST,
    METRIC_LEASES_CLAIMED,
    METRIC_LEASES_RELEASED,
    METRIC_LEASES_RENEWED,
    METRIC_PENDING_DEPTH,
    METRIC_RATE_LIMIT_DECISIONS,
    METRIC_RATE_LIMIT_FALLBACKS,
    METRIC_TASK_DURATION,
    METRIC_TASKS_COMPLETED,
    METRIC_TASKS_ENQUEUED,
    CircuitState,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the task hub.

    Collects metrics for:
    - Queue depth, enqueues and completions
    - Lease claims, lost races, releases and renewals
    - Rate limiter decisions and store fallbacks
    - Circuit breaker state and rejections
    - API requests
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.tasks_enqueued = Counter(
            METRIC_TASKS_ENQUEUED,
            "Total number of tasks enqueued",
            registry=self._registry,
        )

        self.pending_depth = Gauge(
            METRIC_PENDING_DEPTH,
            "Length of the pending task list at last observation",
            registry=self._registry,
        )

        self.leases_claimed = Counter(
            METRIC_LEASES_CLAIMED,
            "Total number of leases acquired",
            ["worker_id"],
            registry=self._registry,
        )

        self.claim_races_lost = Counter(
            METRIC_CLAIM_RACES_LOST,
            "Total number of claim attempts that lost nonce verification",
            registry=self._registry,
        )

        self.leases_released = Counter(
            METRIC_LEASES_RELEASED,
            "Total number of leases released",
            ["reason"],
            registry=self._registry,
        )

        self.leases_renewed = Counter(
            METRIC_LEASES_RENEWED,
            "Total number of lease renewals",
            registry=self._registry,
        )

        self.tasks_completed = Counter(
            METRIC_TASKS_COMPLETED,
            "Total number of tasks completed",
            ["outcome"],
            registry=self._registry,
        )

        self.task_duration = Histogram(
            METRIC_TASK_DURATION,
            "Task execution duration in seconds",
            ["task_type", "outcome"],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
            registry=self._registry,
        )

        self.rate_limit_decisions = Counter(
            METRIC_RATE_LIMIT_DECISIONS,
            "Rate limiter admission decisions",
            ["channel", "allowed"],
            registry=self._registry,
        )

        self.rate_limit_fallbacks = Counter(
            METRIC_RATE_LIMIT_FALLBACKS,
            "Rate limit checks served by the in-memory fallback",
            ["channel"],
            registry=self._registry,
        )

        self.circuit_state = Gauge(
            METRIC_CIRCUIT_STATE,
            "Circuit breaker state (0=closed, 1=half-open, 2=open)",
            ["name"],
            registry=self._registry,
        )

        self.circuit_rejections = Counter(
            METRIC_CIRCUIT_REJECTIONS,
            "Calls rejected because the circuit was open",
            ["name"],
            registry=self._registry,
        )

        self.api_requests = Counter(
            METRIC_API_REQUESTS,
            "Total number of API requests",
            ["method", "endpoint", "status"],
            registry=self._registry,
        )

        self.api_latency = Histogram(
            METRIC_API_LATENCY,
            "API request latency in seconds",
            ["method", "endpoint"],
            buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
            registry=self._registry,
        )

    def record_task_enqueued(self, pending_depth: int) -> None:
        self.tasks_enqueued.inc()
        self.pending_depth.set(pending_depth)

    def update_pending_depth(self, depth: int) -> None:
        self.pending_depth.set(depth)

    def record_lease_claimed(self, worker_id: str) -> None:
        self.leases_claimed.labels(worker_id=worker_id).inc()

    def record_claim_race_lost(self) -> None:
        self.claim_races_lost.inc()

    def record_lease_released(self, reason: str) -> None:
        self.leases_released.labels(reason=reason).inc()

    def record_lease_renewed(self) -> None:
        self.leases_renewed.inc()

    def record_task_completed(self, success: bool) -> None:
        self.tasks_completed.labels(outcome="success" if success else "failure").inc()

    def record_task_duration(self, task_type: str, success: bool, duration_seconds: float) -> None:
        """Record how long a worker spent executing a task."""
        self.task_duration.labels(
            task_type=task_type,
            outcome="success" if success else "failure",
        ).observe(duration_seconds)

    def record_rate_limit_decision(self, channel: str, allowed: bool) -> None:
        self.rate_limit_decisions.labels(channel=channel, allowed=str(allowed).lower()).inc()

    def record_rate_limit_fallback(self, channel: str) -> None:
        self.rate_limit_fallbacks.labels(channel=channel).inc()

    def record_circuit_state(self, name: str, state: CircuitState) -> None:
        self.circuit_state.labels(name=name).set(CIRCUIT_STATE_VALUES[state])

    def record_circuit_rejection(self, name: str) -> None:
        self.circuit_rejections.labels(name=name).inc()

    def record_api_request(
        self,
        method: str,
        endpoint: str,
        status: int,
        duration_seconds: float,
    ) -> None:
        """Record an API request."""
        self.api_requests.labels(
            method=method,
            endpoint=endpoint,
            status=str(status),
        ).inc()
        self.api_latency.labels(method=method, endpoint=endpoint).observe(
            duration_seconds
        )

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics response."""
        return CONTENT_TYPE_LATEST


def setup_metrics() -> MetricsCollector:
    """
    Set up and return the process-wide metrics collector.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance, creating it on first use.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
