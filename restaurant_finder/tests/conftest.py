from __future__ import annotations

from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from restaurant_finder.app import app, get_now
from restaurant_finder.restaurants.store import RestaurantStore, get_store

# 2023-06-14 is a Wednesday
WEDNESDAY_3PM = datetime(2023, 6, 14, 15, 0)

DAILY_HOURS = "11:00-23:00"


def _restaurant(external_id: str, **overrides) -> dict:
    record = {
        "externalId": external_id,
        "name": f"Restaurant {external_id}",
        "address": f"{external_id} Main St",
        "area": "Downtown",
        "location": {"type": "Point", "coordinates": [103.85, 1.30]},
        "cuisines": ["Pizza"],
        "priceLevel": 2,
        "rating": 4.0,
        "reviewCount": 100,
        "isOpen": True,
        "openingHours": {
            "displayedHours": f"Daily {DAILY_HOURS}",
            **{day: DAILY_HOURS for day in ("sun", "mon", "tue", "wed", "thu", "fri", "sat")},
        },
        "estimatedDeliveryTime": 25,
        "distanceInKm": 1.0,
    }
    record.update(overrides)
    return record


@pytest.fixture
def make_restaurant():
    return _restaurant


@pytest.fixture
def five_restaurants():
    """Five restaurants with distinct ratings and delivery times."""
    ratings = [4.5, 3.0, 2.5, 4.0, 3.5]
    delivery = [25, 45, 20, 35, 30]
    return [
        _restaurant(f"r{i + 1}", rating=rating, estimatedDeliveryTime=minutes)
        for i, (rating, minutes) in enumerate(zip(ratings, delivery))
    ]


@pytest.fixture
def five_store(five_restaurants):
    return RestaurantStore(five_restaurants)


@pytest.fixture
def make_client():
    def _make(store: RestaurantStore, now: datetime = WEDNESDAY_3PM) -> TestClient:
        app.dependency_overrides[get_store] = lambda: store
        app.dependency_overrides[get_now] = lambda: now
        return TestClient(app)

    yield _make
    app.dependency_overrides.clear()
