"""
Pytest configuration and fixtures for the fragrance catalog test suite.
"""

from datetime import datetime, timedelta, timezone as dt_timezone

import pytest
from django.core.cache import cache


class FixedClock:
    """Controllable clock for budget and throttle tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(autouse=True)
def clear_cache():
    """Start every test with an empty cache (results and throttle counters)."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture(autouse=True)
def fresh_engine():
    """Drop the process-wide engine so tests never share budget or log state."""
    from catalog.services.population import reset_population_engine

    reset_population_engine()
    yield
    reset_population_engine()


@pytest.fixture
def clock():
    return FixedClock(datetime(2025, 6, 1, 12, 0, tzinfo=dt_timezone.utc))


@pytest.fixture
def api_client():
    """Create a test API client."""
    from rest_framework.test import APIClient

    return APIClient()


@pytest.fixture
def staff_client(db):
    """API client authenticated as a staff user."""
    from django.contrib.auth import get_user_model
    from rest_framework.test import APIClient

    user = get_user_model().objects.create_user(
        username="operator", password="operator-pass", is_staff=True
    )
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def make_fragrance(db):
    """Factory for stored fragrances."""
    from catalog.models import Fragrance

    def _make(**kwargs):
        values = {"name": "Test Fragrance", "brand": "Test House"}
        values.update(kwargs)
        return Fragrance.objects.create(**values)

    return _make


@pytest.fixture
def perfumero_item():
    """Builder for raw Perfumero search entries."""

    def _item(pid, name, brand, rating=None, popularity=None, notes=None, **extra):
        item = {
            "pid": pid,
            "name": name,
            "brand": brand,
            "rating": rating,
            "popularity": popularity,
            "notes": notes or {"top": [], "middle": [], "base": []},
        }
        item.update(extra)
        return item

    return _item
