"""
Tests for the admission gate strategies and their fail-open behaviour.
"""

import fakeredis
import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError

from ticketing.core.exceptions import PersistenceUnavailable
from ticketing.schemas.booking import Rejection
from ticketing.services import admission_service, booking_ledger, inventory_store, strategy_factory
from ticketing.services.admission_service import RedisAdmission, seats_key
from ticketing.services.interfaces.optimistic_admission import OptimisticAdmission
from ticketing.services.reference_generator import ReferenceGenerator
from ticketing.services.reservation_service import ReservationService, SOLD_OUT_MESSAGE


class BrokenRedis:
    """Redis client whose every call fails like a dropped connection."""

    async def get(self, key):
        raise ConnectionError("Connection refused")

    async def set(self, key, value):
        raise ConnectionError("Connection refused")


@pytest_asyncio.fixture
async def fake_redis(monkeypatch):
    client = fakeredis.FakeAsyncRedis(decode_responses=True)

    async def get_fake_redis():
        return client

    monkeypatch.setattr(admission_service, "get_redis", get_fake_redis)
    yield client
    await client.aclose()


@pytest.fixture
def gated_service(session_factory, fake_redis) -> ReservationService:
    return ReservationService(
        session_factory,
        reference_generator=ReferenceGenerator("TG"),
        admission=RedisAdmission(),
        hold_seconds=30,
    )


def test_default_strategy_is_optimistic():
    assert isinstance(strategy_factory.get_admission_strategy(), OptimisticAdmission)


def test_redis_strategy_selected_by_setting(monkeypatch):
    monkeypatch.setattr(strategy_factory.get_settings(), "ADMISSION_STRATEGY", "redis")
    assert isinstance(strategy_factory.get_admission_strategy(), RedisAdmission)


@pytest.mark.asyncio
async def test_optimistic_always_admits():
    gate = OptimisticAdmission()
    assert await gate.admit(1)
    await gate.sync(1, 0)
    assert await gate.admit(1)


@pytest.mark.asyncio
async def test_redis_gate_without_redis_admits(monkeypatch):
    async def no_redis():
        return None

    monkeypatch.setattr(admission_service, "get_redis", no_redis)
    gate = RedisAdmission()

    assert await gate.admit(1)
    await gate.sync(1, 0)
    assert await gate.admit(1)


@pytest.mark.asyncio
async def test_redis_gate_fails_open(monkeypatch):
    async def broken_redis():
        return BrokenRedis()

    monkeypatch.setattr(admission_service, "get_redis", broken_redis)
    gate = RedisAdmission()

    assert await gate.admit(7)
    # Errors are logged, never raised into the reservation path
    await gate.sync(7, 3)


@pytest.mark.asyncio
async def test_redis_gate_follows_synced_count(fake_redis):
    gate = RedisAdmission()

    assert await gate.admit(3)
    await gate.sync(3, 2)
    assert await fake_redis.get(seats_key(3)) == "2"
    assert await gate.admit(3)

    await gate.sync(3, 0)
    assert not await gate.admit(3)


@pytest.mark.asyncio
async def test_seat_held_elsewhere_does_not_block_last_free_seat(gated_service, resource_factory, units_of, fetch_resource, make_intent, session_factory):
    """Two seats, one held by a request in flight: the other seat is still sold."""
    resource = await resource_factory(capacity=2)
    units = await units_of(resource.id)
    async with session_factory() as db:
        await inventory_store.try_claim(db, units[0].id, units[0].version, "in-flight", 30)
        await db.commit()
    await gated_service.admission.sync(resource.id, (await fetch_resource(resource.id)).available_count)

    booking = await gated_service.reserve(make_intent(resource.id, units[1].id))

    assert not isinstance(booking, Rejection)
    assert (await fetch_resource(resource.id)).available_count == 0


@pytest.mark.asyncio
async def test_gate_rejects_once_sold_out_and_reopens_on_cancel(gated_service, fake_redis, resource_factory, units_of, make_intent):
    resource = await resource_factory(capacity=2)
    units = await units_of(resource.id)

    first = await gated_service.reserve(make_intent(resource.id, units[0].id))
    assert await fake_redis.get(seats_key(resource.id)) == "1"
    await gated_service.reserve(make_intent(resource.id, units[1].id))
    assert await fake_redis.get(seats_key(resource.id)) == "0"

    rejected = await gated_service.reserve(make_intent(resource.id, units[0].id))
    assert isinstance(rejected, Rejection)
    assert rejected.reason == "seat_unavailable"
    assert rejected.message == SOLD_OUT_MESSAGE

    await gated_service.cancel(first.id)
    assert await fake_redis.get(seats_key(resource.id)) == "1"
    again = await gated_service.reserve(make_intent(resource.id, units[0].id))
    assert not isinstance(again, Rejection)


@pytest.mark.asyncio
async def test_compensation_restores_gate(gated_service, fake_redis, resource_factory, units_of, make_intent, monkeypatch):
    resource = await resource_factory(capacity=1)
    unit = (await units_of(resource.id))[0]
    await gated_service.admission.sync(resource.id, 1)

    async def failing_append(*args, **kwargs):
        raise OperationalError("INSERT INTO bookings", {}, Exception("server closed the connection unexpectedly"))

    with monkeypatch.context() as patched:
        patched.setattr(booking_ledger, "append", failing_append)
        with pytest.raises(PersistenceUnavailable):
            await gated_service.reserve(make_intent(resource.id, unit.id))

    assert await fake_redis.get(seats_key(resource.id)) == "1"
    booking = await gated_service.reserve(make_intent(resource.id, unit.id))
    assert not isinstance(booking, Rejection)


@pytest.mark.asyncio
async def test_expired_hold_sweep_reopens_gate(gated_service, fake_redis, resource_factory, units_of, session_factory):
    resource = await resource_factory(capacity=1)
    unit = (await units_of(resource.id))[0]
    async with session_factory() as db:
        await inventory_store.try_claim(db, unit.id, unit.version, "crashed-request", -60)
        await db.commit()
    await gated_service.admission.sync(resource.id, 0)

    assert await gated_service.release_expired_holds(resource.id) == {resource.id: 1}
    assert await fake_redis.get(seats_key(resource.id)) == "1"
