"""
HTTP API tests

Exercise the routers end to end through TestClient: identity headers,
status codes and the structured error detail.
"""

from datetime import date, timedelta

import pytest

from clinic_booking.models import Payment

from .conftest import headers_for

PATIENT = headers_for(1)
STAFF = headers_for(900, "staff")
ADMIN = headers_for(901, "admin")


@pytest.fixture
def setup(open_every_day, make_patient, make_service):
    make_patient(user_id=1)
    return make_service()


@pytest.fixture
def tomorrow_iso():
    return (date.today() + timedelta(days=1)).isoformat()


def book(client, service, day, start="08:00", method="cash", headers=PATIENT):
    return client.post(
        "/appointments",
        json={"service_id": service.id, "date": day, "start_time": start, "payment_method": method},
        headers=headers,
    )


# ============================================================================
# BASICS AND AUTH
# ============================================================================


class TestBasics:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_missing_identity(self, client, setup, tomorrow_iso):
        assert book(client, setup, tomorrow_iso, headers={}).status_code == 401

    def test_unknown_role(self, client, setup, tomorrow_iso):
        response = book(client, setup, tomorrow_iso, headers=headers_for(1, "dentist"))
        assert response.status_code == 403

    def test_patient_cannot_approve(self, client, setup, tomorrow_iso):
        appointment_id = book(client, setup, tomorrow_iso).json()["appointment"]["id"]
        response = client.post(f"/appointments/{appointment_id}/approve", headers=PATIENT)
        assert response.status_code == 403


class TestSchedule:
    def test_clinic_day(self, client, open_every_day, tomorrow_iso):
        response = client.get(f"/schedule/days/{tomorrow_iso}")
        assert response.status_code == 200
        body = response.json()
        assert body["is_open"] is True
        assert body["grid"][0] == "08:00"
        assert body["source"] == "weekly"

    def test_grid(self, client):
        response = client.get("/schedule/grid", params={"open": "09:00", "close": "10:00"})
        assert response.json()["grid"] == ["09:00", "09:30"]

    def test_bad_grid_hours(self, client):
        response = client.get("/schedule/grid", params={"open": "nine", "close": "10:00"})
        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "validation_error"

    def test_close_a_day(self, client, open_every_day, tomorrow_iso):
        response = client.put(f"/schedule/overrides/{tomorrow_iso}", json={"is_open": False, "note": "Seminar"}, headers=STAFF)
        assert response.status_code == 200
        assert client.get(f"/schedule/days/{tomorrow_iso}").json()["is_open"] is False

        assert client.delete(f"/schedule/overrides/{tomorrow_iso}", headers=STAFF).status_code == 204
        assert client.get(f"/schedule/days/{tomorrow_iso}").json()["is_open"] is True

    def test_capacity_requires_staff(self, client, tomorrow_iso):
        response = client.put(f"/schedule/capacity/{tomorrow_iso}", json={"capacity": 4}, headers=PATIENT)
        assert response.status_code == 403


# ============================================================================
# BOOKING
# ============================================================================


class TestBookingEndpoints:
    def test_book(self, client, setup, tomorrow_iso):
        response = book(client, setup, tomorrow_iso)
        assert response.status_code == 201
        body = response.json()
        assert len(body["reference_code"]) == 8
        assert body["appointment"]["status"] == "pending"
        assert body["appointment"]["time_slot"] == "08:00-09:00"

    def test_request_validation_shape(self, client, setup, tomorrow_iso):
        response = book(client, setup, tomorrow_iso, method="bitcoin")
        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["error"] == "validation_error"
        assert detail["errors"]

    def test_capacity_error(self, client, setup, make_patient, set_capacity, tomorrow_iso):
        set_capacity(date.fromisoformat(tomorrow_iso), 1)
        book(client, setup, tomorrow_iso)
        make_patient(user_id=2)

        response = book(client, setup, tomorrow_iso, headers=headers_for(2))
        assert response.status_code == 422
        assert response.json()["detail"] == {
            "error": "capacity_error",
            "message": "Time slot starting at 08:00 is already full.",
            "full_at": "08:00",
        }

    def test_blocked_patient(self, client, setup, make_patient, tomorrow_iso):
        make_patient(user_id=3, block_status="blocked", block_type="account", block_reason="No-shows")
        response = book(client, setup, tomorrow_iso, headers=headers_for(3))
        assert response.status_code == 403
        detail = response.json()["detail"]
        assert detail["block_type"] == "account"
        assert detail["block_reason"] == "No-shows"

    def test_ip_block_uses_forwarded_header(self, client, setup, make_patient, tomorrow_iso):
        make_patient(block_status="blocked", block_type="ip", blocked_ip="203.0.113.5")
        headers = {**PATIENT, "X-Forwarded-For": "203.0.113.5, 10.0.0.1"}
        response = book(client, setup, tomorrow_iso, headers=headers)
        assert response.status_code == 403
        assert response.json()["detail"]["block_type"] == "ip"

    def test_slots(self, client, setup, tomorrow_iso):
        response = client.get("/appointments/slots", params={"date": tomorrow_iso, "service_id": setup.id})
        assert response.status_code == 200
        assert response.json()["start_times"][-1] == "16:00"

    def test_walk_in(self, client, setup):
        payload = {
            "service_id": setup.id,
            "date": date.today().isoformat(),
            "start_time": "09:00",
            "payment_method": "cash",
            "new_patient": {"first_name": "Ana", "last_name": "Reyes"},
        }
        response = client.post("/appointments/walk-in", json=payload, headers=STAFF)
        assert response.status_code == 201
        appointment = response.json()["appointment"]
        assert appointment["status"] == "approved"
        assert appointment["booked_by_staff"] is True

        lookup = client.get(f"/appointments/reference/{response.json()['reference_code'].lower()}", headers=STAFF)
        assert lookup.status_code == 200
        assert lookup.json()["patient_name"] == "Ana Reyes"

    def test_walk_in_needs_one_patient_source(self, client, setup):
        payload = {
            "service_id": setup.id,
            "date": date.today().isoformat(),
            "start_time": "09:00",
            "payment_method": "cash",
        }
        response = client.post("/appointments/walk-in", json=payload, headers=STAFF)
        assert response.status_code == 422

    def test_unknown_reference(self, client):
        response = client.get("/appointments/reference/ZZZZZZZZ", headers=STAFF)
        assert response.status_code == 404
        assert response.json()["detail"]["message"] == "Invalid or used reference code."


# ============================================================================
# LIFECYCLE, PAYMENTS AND REFUNDS
# ============================================================================


class TestLifecycleEndpoints:
    def test_approve_then_conflict(self, client, setup, tomorrow_iso):
        appointment_id = book(client, setup, tomorrow_iso).json()["appointment"]["id"]

        first = client.post(f"/appointments/{appointment_id}/approve", headers=STAFF)
        assert first.status_code == 200
        assert first.json()["status"] == "approved"

        second = client.post(f"/appointments/{appointment_id}/approve", headers=STAFF)
        assert second.status_code == 409
        assert second.json()["detail"]["error"] == "state_conflict"

    def test_reject_needs_note(self, client, setup, tomorrow_iso):
        appointment_id = book(client, setup, tomorrow_iso).json()["appointment"]["id"]
        response = client.post(f"/appointments/{appointment_id}/reject", json={"note": ""}, headers=STAFF)
        assert response.status_code == 422

    def test_cancel_without_body(self, client, setup, tomorrow_iso):
        appointment_id = book(client, setup, tomorrow_iso).json()["appointment"]["id"]
        response = client.post(f"/appointments/{appointment_id}/cancel", headers=PATIENT)
        assert response.status_code == 200
        assert response.json()["appointment"]["status"] == "cancelled"
        assert response.json()["refund_request_created"] is False

    def test_paid_maya_refund_flow(self, client, setup, db_session):
        day = (date.today() + timedelta(days=3)).isoformat()
        appointment_id = book(client, setup, day, method="maya").json()["appointment"]["id"]
        payment = db_session.query(Payment).filter_by(appointment_id=appointment_id).one()

        paid = client.post(f"/payments/{payment.id}/paid", json={})
        assert paid.status_code == 200
        assert paid.json()["status"] == "paid"
        assert client.post(f"/payments/{payment.id}/paid").status_code == 409

        cancelled = client.post(
            f"/appointments/{appointment_id}/cancel", json={"reason": "Schedule conflict"}, headers=PATIENT
        )
        assert cancelled.json()["refund_request_created"] is True
        refund_id = cancelled.json()["refund_request_id"]

        assert client.post(f"/refunds/{refund_id}/approve", headers=STAFF).status_code == 403
        assert client.post(f"/refunds/{refund_id}/approve", headers=ADMIN).json()["status"] == "approved"
        assert client.post(f"/refunds/{refund_id}/process", headers=ADMIN).json()["status"] == "processed"

        claims = client.get("/refunds/claims", headers=PATIENT).json()
        assert [claim["id"] for claim in claims] == [refund_id]

        confirmed = client.post(f"/refunds/{refund_id}/confirm", headers=PATIENT)
        assert confirmed.status_code == 200
        assert confirmed.json()["patient_confirmed_at"] is not None

    def test_reschedule_cash_conflict(self, client, setup, tomorrow_iso):
        appointment_id = book(client, setup, tomorrow_iso).json()["appointment"]["id"]
        response = client.post(
            f"/appointments/{appointment_id}/reschedule",
            json={"date": tomorrow_iso, "start_time": "10:00"},
            headers=PATIENT,
        )
        assert response.status_code == 409


class TestRefundSettingsEndpoints:
    def test_read_and_update(self, client):
        assert client.get("/refunds/settings", headers=STAFF).json()["cancellation_deadline_hours"] == 24

        response = client.put("/refunds/settings", json={"monthly_cancellation_limit": 5}, headers=ADMIN)
        assert response.status_code == 200
        assert response.json()["monthly_cancellation_limit"] == 5

    def test_update_requires_admin(self, client):
        response = client.put("/refunds/settings", json={"monthly_cancellation_limit": 5}, headers=STAFF)
        assert response.status_code == 403

    def test_update_bounds(self, client):
        response = client.put("/refunds/settings", json={"reminder_days": 90}, headers=ADMIN)
        assert response.status_code == 422
