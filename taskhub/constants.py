"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class TaskStatus(StrEnum):
    """
    Well-known task statuses.

    Workers may write any non-empty status string; these are the ones the
    queue and the bundled worker use themselves.
    """

    PENDING = "pending"
    CLAIMED = "claimed"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class CircuitState(StrEnum):
    """
    Circuit breaker states.

    State transitions:
    - CLOSED -> OPEN (failure threshold reached)
    - OPEN -> HALF_OPEN (reset timeout elapsed, next call probes)
    - HALF_OPEN -> CLOSED (success threshold reached)
    - HALF_OPEN -> OPEN (any failure)
    """

    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


# Numeric encoding for the circuit state gauge
CIRCUIT_STATE_VALUES: dict[CircuitState, int] = {
    CircuitState.CLOSED: 0,
    CircuitState.HALF_OPEN: 1,
    CircuitState.OPEN: 2,
}

# Store key layout
KEY_VERSION = "v1"
PENDING_KEY = f"{KEY_VERSION}:orchestrator:pending"
TASK_KEY_PREFIX = f"{KEY_VERSION}:orchestrator:queue:"
RESULT_KEY_PREFIX = f"{KEY_VERSION}:orchestrator:result:"
LEASE_KEY_PREFIX = "orchestrator:lease:"
RATE_LIMIT_KEY_PREFIX = "ratelimit:"

# Queue defaults
DEFAULT_LEASE_DURATION_SECONDS = 300
MAX_LEASE_DURATION_SECONDS = 600
DEFAULT_TASK_TTL_SECONDS = 3600
DEFAULT_RESULT_RETENTION_SECONDS = 3600
DEFAULT_TASK_TYPE = "echo"
NO_TASKS_MESSAGE = "No tasks available or all tasks are leased"
TASK_ID_PATTERN = r"^[A-Za-z0-9_.:-]{1,128}$"

# Rate limit defaults (requests per window)
DEFAULT_RATE_LIMIT = 30
DEFAULT_CHANNEL_LIMITS: dict[str, int] = {
    "slack": 100,
    "admin": 10,
    "queue": 120,
    "limitless_webhook_public": 10,
    "limitless_webhook_auth": 60,
}
QUEUE_RATE_LIMIT_CHANNEL = "queue"

# API constants
API_PREFIX = "/api"
API_KEY_HEADER = "X-API-Key"
RATE_LIMIT_EXEMPT_PATHS = ("/health", "/ready", "/live", "/metrics", "/docs", "/openapi.json")

# Metrics names
METRIC_TASKS_ENQUEUED = "taskhub_tasks_enqueued_total"
METRIC_PENDING_DEPTH = "taskhub_pending_depth"
METRIC_LEASES_CLAIMED = "taskhub_leases_claimed_total"
METRIC_CLAIM_RACES_LOST = "taskhub_claim_races_lost_total"
METRIC_LEASES_RELEASED = "taskhub_leases_released_total"
METRIC_LEASES_RENEWED = "taskhub_leases_renewed_total"
METRIC_TASKS_COMPLETED = "taskhub_tasks_completed_total"
METRIC_TASK_DURATION = "taskhub_task_duration_seconds"
METRIC_RATE_LIMIT_DECISIONS = "taskhub_rate_limit_decisions_total"
METRIC_RATE_LIMIT_FALLBACKS = "taskhub_rate_limit_fallbacks_total"
METRIC_CIRCUIT_STATE = "taskhub_circuit_state"
METRIC_CIRCUIT_REJECTIONS = "taskhub_circuit_rejections_total"
METRIC_API_REQUESTS = "taskhub_api_requests_total"
METRIC_API_LATENCY = "taskhub_api_request_latency_seconds"

# Trace span names
SPAN_CLAIM_TASK = "claim_task"
SPAN_EXECUTE_TASK = "execute_task"
SPAN_COMPLETE_TASK = "complete_task"
