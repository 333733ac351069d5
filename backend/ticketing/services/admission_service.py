"""
Admission control service for high-contention on-sales.
Implements AdmissionStrategy interface using Redis.

The gate keeps one key per resource holding the last committed
available_count, written by the coordinator after every claim, booking,
compensation, cancellation and expired-hold sweep. A request is turned
away only when that count is zero. Requests in flight are not counted a
second time: the database claim is authoritative and settles who gets
the remaining seats.

Circuit Breaker Pattern:
  On Redis failure, the gate "fails open" (admits the request). A Redis
  outage only costs the fail-fast shortcut, never correctness.
"""

from ticketing.services.interfaces.admission import AdmissionStrategy
from ticketing.infrastructure.redis_client import get_redis
from ticketing.core.logging import get_logger
from ticketing.core.metrics import redis_connection_errors, redis_circuit_breaker_open

logger = get_logger(__name__)


def seats_key(resource_id: int) -> str:
    return f"admission:seats:{resource_id}"


class RedisAdmission(AdmissionStrategy):
    """
    Redis-based admission control.

    Strategy: reject at the Redis gate once a resource is sold out, before
    the database sees the request. Use for flash on-sales where thousands
    of clients keep retrying a sold-out event.
    """

    async def admit(self, resource_id: int) -> bool:
        client = await get_redis()
        if client is None:
            return True

        try:
            seats = await client.get(seats_key(resource_id))
            redis_circuit_breaker_open.set(0)
        except Exception as e:
            redis_connection_errors.inc()
            redis_circuit_breaker_open.set(1)
            logger.warning("admission_fail_open", resource_id=resource_id, error=str(e))
            return True

        # Never synced yet: let the database decide
        if seats is None:
            return True
        return int(seats) > 0

    async def sync(self, resource_id: int, available_count: int):
        client = await get_redis()
        if client is None:
            return
        try:
            await client.set(seats_key(resource_id), available_count)
        except Exception as e:
            redis_connection_errors.inc()
            logger.warning("admission_sync_failed", resource_id=resource_id, error=str(e))
