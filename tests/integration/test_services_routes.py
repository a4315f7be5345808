"""
Integration tests for Services API.
"""
import pytest
from uuid import uuid4
from fastapi.testclient import TestClient

from coolfix.api.app import app
from coolfix.lib.db import get_db_context
from coolfix.models.services import Service, ServiceCategory


@pytest.fixture
def client():
    """Test client for FastAPI app."""
    return TestClient(app)


@pytest.fixture
def sample_services():
    """Create sample services for testing."""
    with get_db_context() as db:
        services = [
            Service(
                id=uuid4(),
                name="AC Gas Refill",
                category=ServiceCategory.AC,
                description="Refrigerant top-up for split units",
                icon="❄️",
                base_price=4500.00,
                active=True,
            ),
            Service(
                id=uuid4(),
                name="Fridge Compressor Repair",
                category=ServiceCategory.REFRIGERATOR,
                description="Compressor diagnosis and repair",
                icon="🧊",
                base_price=6000.00,
                is_emergency=True,
                active=True,
            ),
            Service(
                id=uuid4(),
                name="Washer Drum Service",
                category=ServiceCategory.WASHING_MACHINE,
                description="Drum and bearing service",
                icon="🌀",
                base_price=2500.00,
                active=True,
            ),
            Service(
                id=uuid4(),
                name="Retired Service",
                category=ServiceCategory.GENERAL,
                description="No longer offered",
                base_price=500.00,
                active=False,
            ),
        ]

        for service in services:
            db.add(service)

        db.commit()

    yield services


@pytest.mark.integration
def test_list_all_services(client, sample_services):
    """Test listing all active services."""
    response = client.get("/services")

    assert response.status_code == 200
    data = response.json()

    assert len(data) == 3
    assert all("id" in s for s in data)
    assert all("icon" in s for s in data)
    assert all("base_price" in s for s in data)

    names = [s["name"] for s in data]
    assert "AC Gas Refill" in names
    assert "Retired Service" not in names


@pytest.mark.integration
def test_list_services_with_inactive(client, sample_services):
    """Test listing all services including inactive."""
    response = client.get("/services?active_only=false")

    assert response.status_code == 200
    data = response.json()

    assert len(data) == 4
    assert "Retired Service" in [s["name"] for s in data]


@pytest.mark.integration
def test_filter_services_by_category(client, sample_services):
    response = client.get("/services?category=refrigerator")

    assert response.status_code == 200
    data = response.json()

    assert len(data) == 1
    assert data[0]["name"] == "Fridge Compressor Repair"
    assert data[0]["category"] == "refrigerator"
    assert data[0]["is_emergency"] is True


@pytest.mark.integration
def test_filter_by_hyphenated_category(client, sample_services):
    data = client.get("/services?category=washing-machine").json()

    assert [s["name"] for s in data] == ["Washer Drum Service"]


@pytest.mark.integration
def test_list_services_empty_result(client):
    """Test listing services when none exist."""
    response = client.get("/services")

    assert response.status_code == 200
    assert response.json() == []


@pytest.mark.integration
def test_service_price_precision(client, sample_services):
    """Test that prices are returned with correct precision."""
    data = client.get("/services").json()

    refill = next(s for s in data if s["name"] == "AC Gas Refill")

    assert refill["base_price"] == 4500.0


@pytest.mark.integration
def test_invalid_category_filter(client, sample_services):
    """Unknown categories are rejected by the query validation."""
    response = client.get("/services?category=invalid_category")

    assert response.status_code == 400
