"""
Tests for concurrent booking scenarios.

Tests what happens when several customers try to book the same car model
for the same dates at once (race condition scenarios). Requests are sent
together with asyncio.gather against the in-memory database.
"""
import pytest
import asyncio
from datetime import date, timedelta

from models import RateCard
from pricing_service import calculate_pricing


pytestmark = pytest.mark.integration

START = date.today() + timedelta(days=14)
END = START + timedelta(days=3)

EXPLORER_RATES = RateCard(peak=150, mid=120, off=90)
COROLLA_RATES = RateCard(peak=100, mid=80, off=60)


def get_booking_data(user_id: int, car_id: int, rates: RateCard, start=START, end=END) -> dict:
    """Booking request quoting the current price."""
    quote = calculate_pricing(start, end, rates)
    return {
        "user_id": user_id,
        "car_id": car_id,
        "start_date": str(start),
        "end_date": str(end),
        "total_price": quote.total_price,
        "average_price": quote.average_price,
    }


@pytest.fixture
def customers(make_user):
    """Five customers with valid licences."""
    return [make_user(email=f"customer{i}@example.com").user_id for i in range(1, 6)]


class TestConcurrentBooking:
    """Several customers booking the same car model at the same time."""

    @pytest.mark.asyncio
    async def test_two_users_last_unit_one_succeeds(self, client, catalog, customers):
        """
        Two customers book the only Explorer for the same dates.
        Exactly one gets it, the other gets BOOKING_CONFLICT.
        """
        async def book(user_id: int):
            return await client.post("/api/v1/bookings", json=get_booking_data(user_id, 3, EXPLORER_RATES))

        results = await asyncio.gather(book(customers[0]), book(customers[1]))

        successes = [r for r in results if r.status_code == 201]
        failures = [r for r in results if r.status_code != 201]

        assert len(successes) == 1, f"Expected 1 success, got {len(successes)}"
        assert len(failures) == 1, f"Expected 1 failure, got {len(failures)}"
        assert failures[0].status_code in (400, 409)
        assert failures[0].json()["error"] == "BOOKING_CONFLICT"

    @pytest.mark.asyncio
    async def test_five_users_last_unit_stress_test(self, client, catalog, customers):
        async def book(user_id: int):
            return await client.post("/api/v1/bookings", json=get_booking_data(user_id, 3, EXPLORER_RATES))

        results = await asyncio.gather(*(book(user_id) for user_id in customers))

        successes = [r for r in results if r.status_code == 201]
        failures = [r for r in results if r.status_code != 201]

        assert len(successes) == 1, f"Expected 1 success, got {len(successes)}"
        assert len(failures) == 4, f"Expected 4 failures, got {len(failures)}"
        assert all(r.json()["error"] == "BOOKING_CONFLICT" for r in failures)

    @pytest.mark.asyncio
    async def test_three_users_two_units(self, client, catalog, customers):
        """
        Three customers ask for Corolla car 1. Two units exist, so two
        bookings succeed on different cars and the third is rejected.
        """
        async def book(user_id: int):
            return await client.post("/api/v1/bookings", json=get_booking_data(user_id, 1, COROLLA_RATES))

        results = await asyncio.gather(*(book(user_id) for user_id in customers[:3]))

        successes = [r for r in results if r.status_code == 201]
        assert len(successes) == 2

        booked_cars = sorted(r.json()["data"]["bookings"][0]["car_id"] for r in successes)
        assert booked_cars == [1, 2]

    @pytest.mark.asyncio
    async def test_different_dates_all_succeed(self, client, catalog, customers):
        """Back-to-back ranges on the same car do not conflict."""
        ranges = [
            (START, START + timedelta(days=1)),
            (START + timedelta(days=2), START + timedelta(days=3)),
            (START + timedelta(days=4), START + timedelta(days=4)),
        ]

        async def book(user_id: int, start: date, end: date):
            data = get_booking_data(user_id, 3, EXPLORER_RATES, start=start, end=end)
            return await client.post("/api/v1/bookings", json=data)

        results = await asyncio.gather(*(
            book(user_id, start, end) for user_id, (start, end) in zip(customers, ranges)
        ))

        for result in results:
            assert result.status_code == 201, result.json()
            assert result.json()["data"]["bookings"][0]["car_id"] == 3

    @pytest.mark.asyncio
    async def test_model_hidden_after_concurrent_booking(self, client, catalog, customers):
        """Once the Explorer is taken it no longer shows in search results."""
        async def book(user_id: int):
            return await client.post("/api/v1/bookings", json=get_booking_data(user_id, 3, EXPLORER_RATES))

        await asyncio.gather(book(customers[0]), book(customers[1]))

        response = await client.post("/api/v1/available-cars", json={
            "email": "late@example.com",
            "start_date": str(START),
            "end_date": str(END),
            "expire_date": "2099-12-31",
        })
        assert response.status_code == 200
        available = response.json()["data"]["available"]
        assert [car["model_name"] for car in available] == ["Corolla"]

    @pytest.mark.asyncio
    async def test_single_user_concurrent_duplicate(self, client, catalog, customers):
        """The same customer double-submitting gets one booking."""
        data = get_booking_data(customers[0], 1, COROLLA_RATES)

        results = await asyncio.gather(
            client.post("/api/v1/bookings", json=data),
            client.post("/api/v1/bookings", json=data),
        )

        assert sorted(r.status_code for r in results) == [201, 400]

        response = await client.get(f"/api/v1/bookings/user/{customers[0]}")
        assert len(response.json()["data"]) == 1
