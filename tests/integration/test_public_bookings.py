"""
Integration tests for the public booking routes.
"""
import pytest


@pytest.mark.integration
class TestCreatePublicBooking:

    def test_create_returns_201_and_sends_emails(self, client, transport, public_booking_body):
        response = client.post("/bookings/public", json=public_booking_body)

        assert response.status_code == 201
        data = response.json()
        assert data["message"] == "Booking created successfully"
        assert data["isLinkedToUser"] is False
        booking = data["booking"]
        assert data["bookingId"] == booking["bookingId"]
        assert booking["status"] == "pending"
        assert booking["servicePrice"] == 3000
        assert booking["visitCharge"] == 200
        assert booking["totalAmount"] == 3200
        assert booking["service"]["name"] == "AC Repair"
        assert len(booking["statusHistory"]) == 1

        # Background task ran before TestClient returned
        assert len(transport.sent_to("ayesha@example.com")) == 1
        alert = transport.sent_to("admin@coolfix.test")[0]
        assert f"/bookings/admin/confirm/{data['bookingId']}?token=" in alert["html"]
        assert f"/bookings/admin/cancel/{data['bookingId']}?token=" in alert["html"]

    def test_linked_booking(self, client, customer, public_booking_body):
        body = dict(public_booking_body, userId=str(customer.id))

        data = client.post("/bookings/public", json=body).json()

        assert data["isLinkedToUser"] is True
        assert data["booking"]["userId"] == str(customer.id)

    def test_signed_in_caller_is_linked(self, client, customer, auth_headers, public_booking_body):
        response = client.post("/bookings/public", json=public_booking_body, headers=auth_headers(customer))

        assert response.json()["isLinkedToUser"] is True
        assert response.json()["booking"]["userId"] == str(customer.id)

    def test_bad_token_falls_back_to_guest(self, client, public_booking_body):
        response = client.post(
            "/bookings/public",
            json=public_booking_body,
            headers={"Authorization": "Bearer expired-or-garbage"},
        )

        assert response.status_code == 201
        assert response.json()["isLinkedToUser"] is False

    def test_invalid_phone_surfaces_message(self, client, transport, public_booking_body):
        response = client.post("/bookings/public", json=dict(public_booking_body, phone="0300-1234567"))

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "Please enter a valid international phone number (e.g., +923001234567)"
        assert data["details"]["errors"][0]["field"] == "phone"
        assert transport.sent == []

    def test_missing_name_reported_first(self, client, public_booking_body):
        body = dict(public_booking_body)
        del body["customerName"]
        body["address"] = ""

        response = client.post("/bookings/public", json=body)

        assert response.status_code == 400
        assert response.json()["error"] == "Customer name is required"
        fields = [e["field"] for e in response.json()["details"]["errors"]]
        assert fields == ["customerName", "address"]

    def test_guest_without_email_only_alerts_admin(self, client, transport, public_booking_body):
        body = dict(public_booking_body)
        del body["email"]

        assert client.post("/bookings/public", json=body).status_code == 201

        assert [m["to"] for m in transport.sent] == ["admin@coolfix.test"]


@pytest.mark.integration
class TestLookup:

    def test_get_by_public_id(self, client, public_booking_body):
        booking_id = client.post("/bookings/public", json=public_booking_body).json()["bookingId"]

        response = client.get(f"/bookings/public/{booking_id}")

        assert response.status_code == 200
        assert response.json()["bookingId"] == booking_id

    def test_unknown_public_id(self, client):
        response = client.get("/bookings/public/BK404")

        assert response.status_code == 404
        assert response.json()["error"] == "Booking with id 'BK404' not found"

    def test_list_by_phone(self, client, public_booking_body):
        first = client.post("/bookings/public", json=public_booking_body).json()["bookingId"]
        second = client.post("/bookings/public", json=public_booking_body).json()["bookingId"]
        client.post("/bookings/public", json=dict(public_booking_body, phone="+923339999999"))

        response = client.get("/bookings/phone/+923001234567")

        assert response.status_code == 200
        ids = [b["bookingId"] for b in response.json()]
        assert set(ids) == {first, second}


@pytest.mark.integration
class TestGuestCancel:

    def test_cancel_with_matching_phone(self, client, transport, public_booking_body):
        booking_id = client.post("/bookings/public", json=public_booking_body).json()["bookingId"]
        transport.sent.clear()

        response = client.put(
            f"/bookings/public/cancel/{booking_id}",
            json={"phone": "+923001234567", "reason": "No longer needed"},
        )

        assert response.status_code == 200
        booking = response.json()["booking"]
        assert booking["status"] == "cancelled"
        assert booking["cancellationReason"] == "No longer needed"
        assert booking["cancelledAt"] is not None
        assert len(transport.sent_to("ayesha@example.com")) == 1
        assert len(transport.sent_to("admin@coolfix.test")) == 1

    def test_phone_mismatch_is_403_and_silent(self, client, transport, public_booking_body):
        booking_id = client.post("/bookings/public", json=public_booking_body).json()["bookingId"]
        transport.sent.clear()

        response = client.put(f"/bookings/public/cancel/{booking_id}", json={"phone": "+923009999999"})

        assert response.status_code == 403
        assert response.json()["error"] == "Phone number does not match booking"
        assert client.get(f"/bookings/public/{booking_id}").json()["status"] == "pending"
        assert transport.sent == []

    def test_cancel_twice_is_400(self, client, public_booking_body):
        booking_id = client.post("/bookings/public", json=public_booking_body).json()["bookingId"]
        client.put(f"/bookings/public/cancel/{booking_id}", json={"phone": "+923001234567"})

        response = client.put(f"/bookings/public/cancel/{booking_id}", json={"phone": "+923001234567"})

        assert response.status_code == 400
        assert response.json()["error"] == "Booking cannot be cancelled in cancelled status"

    def test_phone_required(self, client, public_booking_body):
        booking_id = client.post("/bookings/public", json=public_booking_body).json()["bookingId"]

        response = client.put(f"/bookings/public/cancel/{booking_id}", json={})

        assert response.status_code == 400
        assert response.json()["error"] == "Phone number is required"
