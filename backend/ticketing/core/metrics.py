"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Reservation metrics
reservation_attempts = Counter(
    'reservation_attempts_total',
    'Total reservation attempts',
    ['outcome']  # confirmed, replayed, invalid_intent, seat_unavailable, error
)

reservation_latency = Histogram(
    'reservation_latency_seconds',
    'Reservation request latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

claim_conflicts = Counter(
    'seat_claim_conflicts_total',
    'Seat claims lost to a concurrent writer'
)

reference_collisions = Counter(
    'booking_reference_collisions_total',
    'Generated booking references rejected by the uniqueness constraint'
)

expired_holds_released = Counter(
    'seat_expired_holds_released_total',
    'Held seats put back on sale after their hold ran out'
)

compensations = Counter(
    'reservation_compensations_total',
    'Compensating releases of claimed seats',
    ['result']  # released, failed
)

cancellations = Counter(
    'booking_cancellations_total',
    'Cancellation requests',
    ['outcome']  # cancelled, already_cancelled, not_found
)

# Admission control metrics
admission_requests = Counter(
    'admission_requests_total',
    'Total admission control requests',
    ['result']  # admitted, rejected
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)

redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
)

redis_circuit_breaker_open = Gauge(
    'redis_circuit_breaker_open',
    'Redis circuit breaker state (1=open, 0=closed)'
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_reservation(outcome: str):
    """Record reservation outcome."""
    reservation_attempts.labels(outcome=outcome).inc()


def record_compensation(released: bool):
    result = "released" if released else "failed"
    compensations.labels(result=result).inc()


def record_cancellation(outcome: str):
    cancellations.labels(outcome=outcome).inc()


def record_admission(admitted: bool):
    """Record admission control decision."""
    result = "admitted" if admitted else "rejected"
    admission_requests.labels(result=result).inc()


def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
