from datetime import datetime, time, timedelta
from decimal import Decimal

from sqlalchemy import select

from app.visite.db import session_scope
from app.visite.models import AuditEvent
from app.visite.modules.bookings import service as booking_service
from app.visite.modules.bookings.models import Booking
from app.visite.modules.bookings.service import generate_booking_number
from app.visite.modules.payments.models import Payment
from app.visite.modules.time_slots.models import TimeSlot


def _booked_count(app, slot_id: int) -> int:
    with session_scope(app) as s:
        return s.get(TimeSlot, slot_id).booked_count


def test_booking_number_format():
    n = generate_booking_number()
    assert n.startswith("VT")
    assert len(n) == 13
    assert n[2:].isdigit()


def test_create_booking_takes_a_seat(app, user_client, seed, make_booking):
    booking = make_booking(user_client, seed)
    assert booking["status"] == "PENDING"
    assert booking["totalAmount"] == 200.0
    assert booking["timeSlot"]["startTime"] == "09:00"
    assert booking["car"]["licensePlate"] == "1234|أ|56"
    assert _booked_count(app, seed["slot"]) == 1

    with session_scope(app) as s:
        ev = s.scalars(select(AuditEvent).where(AuditEvent.action == "booking.create")).one()
        assert ev.entity_id == str(booking["id"])


def test_create_booking_requires_fields(user_client, csrf, seed):
    r = user_client.post("/api/bookings", json={"carId": seed["car"]}, headers=csrf(user_client))
    assert r.status_code == 400
    assert r.get_json()["error"] == "Missing required fields"


def test_create_booking_rejects_foreign_car(user_client, csrf, seed):
    r = user_client.post(
        "/api/bookings",
        json={"carId": seed["other_car"], "inspectionCenterId": seed["center"], "timeSlotId": seed["slot"]},
        headers=csrf(user_client),
    )
    assert r.status_code == 404


def test_create_booking_rejects_slot_of_other_center(app, user_client, csrf, seed):
    r = user_client.post(
        "/api/bookings",
        json={"carId": seed["car"], "inspectionCenterId": seed["center"] + 100, "timeSlotId": seed["slot"]},
        headers=csrf(user_client),
    )
    assert r.status_code == 400
    assert _booked_count(app, seed["slot"]) == 0


def test_duplicate_booking_conflicts(app, user_client, csrf, seed, make_booking):
    make_booking(user_client, seed)
    r = user_client.post(
        "/api/bookings",
        json={"carId": seed["car"], "inspectionCenterId": seed["center"], "timeSlotId": seed["slot"]},
        headers=csrf(user_client),
    )
    assert r.status_code == 409
    assert _booked_count(app, seed["slot"]) == 1


def test_full_slot_rejects_next_customer(app, client, login, seed, make_booking, csrf):
    login(client, "user@example.com")
    make_booking(client, seed, slot_key="single_slot")
    client.get("/fr/auth/signout")

    login(client, "other@example.com")
    r = client.post(
        "/api/bookings",
        json={"carId": seed["other_car"], "inspectionCenterId": seed["center"], "timeSlotId": seed["single_slot"]},
        headers=csrf(client),
    )
    assert r.status_code == 409
    assert r.get_json()["error"] == "Time slot is not available"
    assert _booked_count(app, seed["single_slot"]) == 1


def test_unavailable_slot_rejected(app, user_client, csrf, seed):
    with session_scope(app) as s:
        s.get(TimeSlot, seed["slot"]).is_available = False
    r = user_client.post(
        "/api/bookings",
        json={"carId": seed["car"], "inspectionCenterId": seed["center"], "timeSlotId": seed["slot"]},
        headers=csrf(user_client),
    )
    assert r.status_code == 409


def test_list_own_bookings_only(client, login, seed, make_booking):
    login(client, "user@example.com")
    make_booking(client, seed)
    r = client.get("/api/bookings")
    assert r.status_code == 200
    assert len(r.get_json()["bookings"]) == 1

    r = client.get(f"/api/bookings?userId={seed['other']}")
    assert r.status_code == 403

    client.get("/fr/auth/signout")
    login(client, "other@example.com")
    assert client.get("/api/bookings").get_json()["bookings"] == []


def test_cancel_releases_seat(app, user_client, csrf, seed, make_booking):
    booking = make_booking(user_client, seed)
    r = user_client.patch(
        f"/api/bookings/{booking['id']}/cancel", json={"reason": "Empêchement"}, headers=csrf(user_client)
    )
    assert r.status_code == 200
    assert r.get_json()["booking"]["status"] == "CANCELLED"
    assert _booked_count(app, seed["slot"]) == 0

    r = user_client.patch(f"/api/bookings/{booking['id']}/cancel", json={}, headers=csrf(user_client))
    assert r.status_code == 409

    with session_scope(app) as s:
        ev = s.scalars(select(AuditEvent).where(AuditEvent.action == "booking.cancel")).one()
        assert ev.reason == "Empêchement"


def test_cancel_refunds_completed_payment(app, user_client, csrf, seed, make_booking):
    booking = make_booking(user_client, seed)
    with session_scope(app) as s:
        s.add(Payment(booking_id=booking["id"], amount=Decimal("200.00"), currency="MAD",
                      status="COMPLETED", payment_method="CMI", payment_date=datetime.utcnow()))
    r = user_client.patch(f"/api/bookings/{booking['id']}/cancel", json={}, headers=csrf(user_client))
    assert r.status_code == 200
    assert r.get_json()["booking"]["payment"]["status"] == "REFUNDED"


def test_cancel_too_late(app, user_client, csrf, seed, slot_day, make_booking, monkeypatch):
    booking = make_booking(user_client, seed)
    two_hours_before = datetime.combine(slot_day, time(9, 0)) - timedelta(hours=2)
    monkeypatch.setattr(booking_service, "local_now", lambda: two_hours_before)

    r = user_client.patch(f"/api/bookings/{booking['id']}/cancel", json={}, headers=csrf(user_client))
    assert r.status_code == 409
    assert _booked_count(app, seed["slot"]) == 1


def test_cannot_cancel_someone_elses_booking(client, login, csrf, seed, make_booking):
    login(client, "user@example.com")
    booking = make_booking(client, seed)
    client.get("/fr/auth/signout")
    login(client, "other@example.com")
    r = client.patch(f"/api/bookings/{booking['id']}/cancel", json={}, headers=csrf(client))
    assert r.status_code == 403


def test_booking_page_flow(app, user_client, seed, slot_day, csrf):
    r = user_client.get(f"/fr/booking?centerId={seed['center']}&date={slot_day.isoformat()}")
    assert r.status_code == 200
    assert "09:00" in r.get_data(as_text=True)

    token = csrf(user_client)["X-CSRF-Token"]
    r = user_client.post(
        "/fr/booking",
        data={
            "csrf_token": token,
            "carId": seed["car"],
            "inspectionCenterId": seed["center"],
            "timeSlotId": seed["single_slot"],
            "date": slot_day.isoformat(),
        },
    )
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/fr/bookings")
    assert _booked_count(app, seed["single_slot"]) == 1

    r = user_client.get("/fr/bookings")
    assert r.status_code == 200


def test_admin_list_and_update(app, client, login, csrf, seed, make_booking):
    login(client, "user@example.com")
    booking = make_booking(client, seed)
    client.get("/fr/auth/signout")

    login(client, "admin@example.com")
    r = client.get("/api/admin/bookings?search=Yassine")
    assert r.status_code == 200
    body = r.get_json()
    assert body["pagination"]["total"] == 1
    assert body["bookings"][0]["user"]["email"] == "user@example.com"

    headers = csrf(client)
    r = client.patch("/api/admin/bookings", json={"bookingId": booking["id"], "status": "CONFIRMED", "notes": "OK"},
                     headers=headers)
    assert r.status_code == 200
    assert r.get_json()["booking"]["status"] == "CONFIRMED"
    assert r.get_json()["booking"]["notes"] == "OK"

    r = client.patch("/api/admin/bookings", json={"bookingId": booking["id"], "status": "BOGUS"}, headers=headers)
    assert r.status_code == 400

    r = client.patch("/api/admin/bookings", json={"bookingId": booking["id"], "status": "CANCELLED"}, headers=headers)
    assert r.status_code == 200
    assert _booked_count(app, seed["slot"]) == 0

    r = client.patch("/api/admin/bookings", json={"bookingId": booking["id"], "status": "PENDING"}, headers=headers)
    assert r.status_code == 409

    with session_scope(app) as s:
        assert s.get(Booking, booking["id"]).status == "CANCELLED"


def test_admin_bookings_api_denied_to_users(user_client, csrf):
    assert user_client.get("/api/admin/bookings").status_code == 403
    r = user_client.patch("/api/admin/bookings", json={"bookingId": 1, "status": "CONFIRMED"}, headers=csrf(user_client))
    assert r.status_code == 403
