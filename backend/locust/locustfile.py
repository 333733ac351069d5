"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test double booking
  locust -f locustfile.py --tags throughput   # Test cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests

Resources are created with a token signed by SECRET_KEY (same default as
the API), so point both at the same secret.
"""

import os
import random
import string
from datetime import datetime, timezone, timedelta

import jwt
from locust import HttpUser, task, between, tag, events

SECRET_KEY = os.environ.get("SECRET_KEY", "super-secret-key-change-in-production")

# Shared state
RESOURCE_IDS = []
CONCURRENCY_RESOURCE_ID = None
CONCURRENCY_UNIT_IDS = []


def service_headers():
    token = jwt.encode(
        {"sub": "load-test", "exp": datetime.now(timezone.utc) + timedelta(hours=2)},
        SECRET_KEY,
        algorithm="HS256",
    )
    return {"Authorization": f"Bearer {token}"}


def random_passenger():
    digits = "".join(random.choices(string.digits, k=8))
    return {
        "name": "Load " + "".join(random.choices(string.ascii_lowercase, k=6)),
        "id_number": digits,
        "phone": "07" + digits,
        "next_of_kin_name": "Kin " + "".join(random.choices(string.ascii_lowercase, k=6)),
        "next_of_kin_phone": "07" + digits[::-1],
    }


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print("SETUP: resources are created by the first user of each class")
    print("=" * 60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - 100 users -> 10 seats

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT unit_id, COUNT(*) FROM bookings
       WHERE resource_id = X AND status = 'confirmed'
       GROUP BY unit_id HAVING COUNT(*) > 1;
    Should return no rows.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        if CONCURRENCY_RESOURCE_ID:
            return
        future = (datetime.now(timezone.utc) + timedelta(days=30)).isoformat()
        resp = self.client.post(
            "/api/v1/resources/",
            json={
                "kind": "bus",
                "name": "Concurrency Test Run",
                "origin": "Nairobi",
                "destination": "Mombasa",
                "departs_at": future,
                "price": "1500.00",
                "capacity": 10,
            },
            headers=service_headers(),
        )
        if resp.status_code == 201 and not CONCURRENCY_RESOURCE_ID:
            resource_id = resp.json()["id"]
            units = self.client.get(f"/api/v1/resources/{resource_id}/units").json()
            CONCURRENCY_UNIT_IDS.extend(u["id"] for u in units)
            globals()["CONCURRENCY_RESOURCE_ID"] = resource_id
            print(f"\n✓ Created resource {resource_id} with 10 seats\n")

    @tag("concurrency")
    @task
    def book_limited_seats(self):
        """All users fight for the same 10 seats."""
        if not CONCURRENCY_RESOURCE_ID:
            return

        with self.client.post(
            "/api/v1/bookings/",
            json={
                "resource_id": CONCURRENCY_RESOURCE_ID,
                "unit_id": random.choice(CONCURRENCY_UNIT_IDS),
                "passenger": random_passenger(),
                "payment_method": "mpesa",
            },
            name="/api/v1/bookings/ [contended]",
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: seat taken or sold out
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false on the API, run again

    Compare:
      - Avg response time
      - Requests/sec
      - P95/P99 latency
    """
    wait_time = between(0.1, 0.5)

    def on_start(self):
        if RESOURCE_IDS:
            return
        for day in range(1, 21):
            departs = (datetime.now(timezone.utc) + timedelta(days=day)).isoformat()
            resp = self.client.post(
                "/api/v1/resources/",
                json={
                    "kind": random.choice(["bus", "flight"]),
                    "name": f"Load Run {day}",
                    "origin": random.choice(["Nairobi", "Kisumu", "Eldoret"]),
                    "destination": random.choice(["Mombasa", "Malindi"]),
                    "departs_at": departs,
                    "price": "2500.00",
                    "capacity": 40,
                },
                headers=service_headers(),
                name="/api/v1/resources/ [setup]",
            )
            if resp.status_code == 201:
                RESOURCE_IDS.append(resp.json()["id"])

    @tag("throughput", "read")
    @task(10)
    def search_cached(self):
        """Hammer the cached search endpoint."""
        origin = random.choice(["nai", "kis", "eld"])
        self.client.get(
            f"/api/v1/resources/?origin={origin}&page=1&page_size=20",
            name="/api/v1/resources/ [cached]",
        )

    @tag("throughput", "read")
    @task(3)
    def seat_map(self):
        """Read live seat maps."""
        if RESOURCE_IDS:
            resource_id = random.choice(RESOURCE_IDS)
            self.client.get(
                f"/api/v1/resources/{resource_id}/units?available_only=true",
                name="/api/v1/resources/{id}/units",
            )

    @tag("throughput")
    @task(1)
    def health_check(self):
        """Monitor system health."""
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    @tag("edge")
    @task
    def unknown_resource(self):
        """Book a seat of a resource that does not exist."""
        with self.client.post(
            "/api/v1/bookings/",
            json={
                "resource_id": 999999,
                "unit_id": 1,
                "passenger": random_passenger(),
                "payment_method": "mpesa",
            },
            catch_response=True,
        ) as resp:
            if resp.status_code == 422 and resp.json().get("reason") == "invalid_intent":
                resp.success()
            else:
                resp.failure(f"Expected 422 invalid_intent, got {resp.status_code}")

    @tag("edge")
    @task
    def malformed_intent(self):
        """Unknown fields and short passenger details."""
        with self.client.post(
            "/api/v1/bookings/",
            json={"resource_id": 1, "unit_id": 1, "seat_count": -5, "passenger": {"name": "A"}},
            catch_response=True,
        ) as resp:
            if resp.status_code == 422:
                resp.success()
            else:
                resp.failure(f"Expected 422, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_reference(self):
        with self.client.get(
            "/api/v1/bookings/reference/ZZ00000000",
            name="/api/v1/bookings/reference/{ref}",
            catch_response=True,
        ) as resp:
            if resp.status_code == 404:
                resp.success()
            else:
                resp.failure(f"Expected 404, got {resp.status_code}")
