"""
Integration tests for /metrics endpoint and metrics collection.
"""

import pytest
from httpx import AsyncClient, ASGITransport

from coolfix.api.app import app
from coolfix.lib.metrics import get_metrics_collector


@pytest.mark.integration
@pytest.mark.asyncio
async def test_metrics_endpoint_returns_prometheus_format():
    """Test /metrics endpoint returns Prometheus text format."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"] == "text/plain; version=0.0.4; charset=utf-8"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_metrics_endpoint_empty_when_no_metrics():
    """Test /metrics endpoint returns empty when no metrics recorded."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/metrics")

    assert response.status_code == 200
    assert response.text == ""


@pytest.mark.integration
@pytest.mark.asyncio
async def test_metrics_endpoint_exports_after_activity():
    """Test /metrics endpoint exports counters after activity."""
    metrics = get_metrics_collector()
    metrics.increment_bookings_created("public", amount=5)
    metrics.increment_notifications_sent("received", "email", amount=3)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/metrics")

    assert response.status_code == 200
    output = response.text

    assert "# TYPE bookings_created_total counter" in output
    assert 'bookings_created_total{source="public"} 5' in output
    assert 'notifications_sent_total{channel="EMAIL",event_type="received"} 3' in output


@pytest.mark.integration
def test_booking_activity_is_counted(client, public_booking_body):
    client.post("/bookings/public", json=public_booking_body)

    output = client.get("/metrics").text

    assert 'bookings_created_total{source="public"} 1' in output
    assert 'notifications_sent_total{channel="EMAIL",event_type="new-booking-alert"} 1' in output
