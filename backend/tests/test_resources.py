"""
Tests for resource endpoints: creation, search and seat maps.
"""

from datetime import datetime, timezone, timedelta

import pytest
from httpx import AsyncClient

from ticketing.services import inventory_store


def resource_payload(**overrides) -> dict:
    payload = {
        "kind": "bus",
        "name": "Coast Express",
        "code": "CE-101",
        "origin": "Nairobi",
        "destination": "Mombasa",
        "departs_at": (datetime.now(timezone.utc) + timedelta(days=3)).isoformat(),
        "price": "1500.00",
        "capacity": 4,
        "amenities": ["wifi", "usb"],
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_create_resource(client: AsyncClient, auth_headers):
    """Creating a resource creates one available unit per seat."""
    response = await client.post("/api/v1/resources/", json=resource_payload(), headers=auth_headers)
    assert response.status_code == 201
    data = response.json()
    assert data["kind"] == "bus"
    assert data["capacity"] == 4
    assert data["available_count"] == 4
    assert data["price"] == 1500.0
    assert data["amenities"] == ["wifi", "usb"]

    units = await client.get(f"/api/v1/resources/{data['id']}/units")
    assert units.status_code == 200
    assert [u["label"] for u in units.json()] == ["1", "2", "3", "4"]
    assert all(u["status"] == "available" for u in units.json())


@pytest.mark.asyncio
async def test_create_resource_with_seat_labels(client: AsyncClient, auth_headers):
    payload = resource_payload(kind="flight", capacity=3, seat_labels=["1A", "1B", "1C"])
    response = await client.post("/api/v1/resources/", json=payload, headers=auth_headers)
    assert response.status_code == 201

    units = await client.get(f"/api/v1/resources/{response.json()['id']}/units")
    assert [u["label"] for u in units.json()] == ["1A", "1B", "1C"]


@pytest.mark.asyncio
async def test_create_event_without_route(client: AsyncClient, auth_headers):
    payload = resource_payload(kind="event", name="Jazz Night", origin=None, destination=None, venue="KICC")
    response = await client.post("/api/v1/resources/", json=payload, headers=auth_headers)
    assert response.status_code == 201
    assert response.json()["venue"] == "KICC"


@pytest.mark.asyncio
async def test_create_resource_unauthenticated(client: AsyncClient):
    response = await client.post("/api/v1/resources/", json=resource_payload())
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_resource_invalid_token(client: AsyncClient):
    response = await client.post(
        "/api/v1/resources/",
        json=resource_payload(),
        headers={"Authorization": "Bearer not-a-token"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_resource_in_past(client: AsyncClient, auth_headers):
    past = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
    response = await client.post("/api/v1/resources/", json=resource_payload(departs_at=past), headers=auth_headers)
    assert response.status_code == 400


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"origin": None},
        {"capacity": 0},
        {"price": "-1"},
        {"seat_labels": ["1", "2"]},
        {"seat_labels": ["1", "1", "2", "3"]},
        {"kind": "train"},
        {"unexpected": True},
    ],
)
async def test_create_resource_validation(client: AsyncClient, auth_headers, overrides):
    response = await client.post("/api/v1/resources/", json=resource_payload(**overrides), headers=auth_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_search_resources(client: AsyncClient, resource_factory):
    await resource_factory(name="Coast Express", days_ahead=5)
    await resource_factory(name="Lake Shuttle", origin="Kisumu", destination="Nairobi", days_ahead=2)
    await resource_factory(name="Sky Hop", kind="flight", days_ahead=3)

    response = await client.get("/api/v1/resources/")
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 3
    assert data["cached"] is False
    # Soonest departure first
    assert [r["name"] for r in data["resources"]] == ["Lake Shuttle", "Sky Hop", "Coast Express"]


@pytest.mark.asyncio
async def test_search_by_route_is_case_insensitive_substring(client: AsyncClient, resource_factory):
    await resource_factory(name="Coast Express")
    await resource_factory(name="Lake Shuttle", origin="Kisumu", destination="Nairobi")

    response = await client.get("/api/v1/resources/", params={"origin": "nai", "destination": "MOMB"})
    data = response.json()
    assert data["total"] == 1
    assert data["resources"][0]["name"] == "Coast Express"


@pytest.mark.asyncio
async def test_search_by_kind(client: AsyncClient, resource_factory):
    await resource_factory(name="Coast Express")
    await resource_factory(name="Sky Hop", kind="flight")

    response = await client.get("/api/v1/resources/", params={"kind": "flight"})
    assert [r["name"] for r in response.json()["resources"]] == ["Sky Hop"]


@pytest.mark.asyncio
async def test_search_pagination(client: AsyncClient, resource_factory):
    for day in range(1, 6):
        await resource_factory(name=f"Run {day}", days_ahead=day)

    response = await client.get("/api/v1/resources/", params={"page": 2, "page_size": 2})
    data = response.json()
    assert data["total"] == 5
    assert data["page"] == 2
    assert [r["name"] for r in data["resources"]] == ["Run 3", "Run 4"]


@pytest.mark.asyncio
async def test_get_resource(client: AsyncClient, bus):
    response = await client.get(f"/api/v1/resources/{bus.id}")
    assert response.status_code == 200
    assert response.json()["available_count"] == 10


@pytest.mark.asyncio
async def test_get_resource_not_found(client: AsyncClient):
    response = await client.get("/api/v1/resources/99999")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_units_available_only(client: AsyncClient, bus, units_of, make_intent):
    first_unit = (await units_of(bus.id))[0]
    booked = await client.post("/api/v1/bookings/", json=make_intent(bus.id, first_unit.id))
    assert booked.status_code == 201

    all_units = await client.get(f"/api/v1/resources/{bus.id}/units")
    available = await client.get(f"/api/v1/resources/{bus.id}/units", params={"available_only": True})

    assert len(all_units.json()) == 10
    assert len(available.json()) == 9
    assert first_unit.id not in {u["id"] for u in available.json()}
    assert (await client.get(f"/api/v1/resources/{bus.id}")).json()["available_count"] == 9


@pytest.mark.asyncio
async def test_expired_hold_shows_as_available(client: AsyncClient, single_seat_bus, units_of, session_factory, make_intent):
    """A seat left held by a crashed reservation is back on the seat map and the counter."""
    unit = (await units_of(single_seat_bus.id))[0]
    async with session_factory() as db:
        await inventory_store.try_claim(db, unit.id, unit.version, "crashed-request", -60)
        await db.commit()

    available = await client.get(f"/api/v1/resources/{single_seat_bus.id}/units", params={"available_only": True})
    assert [u["id"] for u in available.json()] == [unit.id]
    assert available.json()[0]["status"] == "available"

    resource = await client.get(f"/api/v1/resources/{single_seat_bus.id}")
    assert resource.json()["available_count"] == 1

    booked = await client.post("/api/v1/bookings/", json=make_intent(single_seat_bus.id, unit.id))
    assert booked.status_code == 201
    assert (await client.get(f"/api/v1/resources/{single_seat_bus.id}")).json()["available_count"] == 0


@pytest.mark.asyncio
async def test_units_of_unknown_resource(client: AsyncClient):
    response = await client.get("/api/v1/resources/99999/units")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_health_without_redis(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["cache"]["status"] == "disabled"


@pytest.mark.asyncio
async def test_metrics_exposes_reservation_counters(client: AsyncClient, bus, units_of, make_intent):
    unit = (await units_of(bus.id))[0]
    await client.post("/api/v1/bookings/", json=make_intent(bus.id, unit.id))

    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "reservation_attempts_total" in response.text
    assert 'outcome="confirmed"' in response.text
