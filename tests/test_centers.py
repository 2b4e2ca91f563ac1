from app.visite.modules.centers.service import validate_center_payload


def _center(**overrides):
    payload = {
        "name": "Centre d'Inspection Oujda",
        "nameAr": "مركز فحص وجدة",
        "nameEn": "Oujda Inspection Center",
        "address": "Boulevard Mohammed VI, Oujda",
        "city": "Oujda",
        "latitude": 34.6814,
        "longitude": -1.9086,
        "services": ["Contrôle technique automobile"],
        "workingHours": {"monday": "08:00-18:00"},
    }
    payload.update(overrides)
    return payload


def test_center_validation():
    assert validate_center_payload(_center()) == []
    errors = validate_center_payload(_center(name="X", address="court", latitude=95, services=[]))
    assert len(errors) == 4
    assert validate_center_payload({"city": "Fès"}, partial=True) == []
    assert validate_center_payload({"longitude": "abc"}, partial=True)
    assert validate_center_payload(_center(email="not-an-email"))


def test_public_list_hides_inactive(app, client, seed):
    from app.visite.db import session_scope
    from app.visite.modules.centers.models import InspectionCenter

    with session_scope(app) as s:
        s.add(InspectionCenter(**{
            "name": "Centre Fermé", "name_ar": "مغلق", "name_en": "Closed", "address": "Route de Fès, km 3",
            "city": "Meknès", "latitude": 33.9, "longitude": -5.5, "is_active": False, "services": ["x"],
        }))

    r = client.get("/api/centers")
    assert r.status_code == 200
    names = [c["name"] for c in r.get_json()["centers"]]
    assert names == ["Centre Test Casablanca"]

    # ?admin=true is ignored for visitors without the permission
    r = client.get("/api/centers?admin=true")
    assert len(r.get_json()["centers"]) == 1


def test_admin_list_includes_inactive_with_counts(admin_client):
    r = admin_client.get("/api/centers?admin=true")
    centers = r.get_json()["centers"]
    assert centers[0]["_count"] == {"bookings": 0, "timeSlots": 2}


def test_center_detail(client, seed):
    r = client.get(f"/api/centers/{seed['center']}")
    assert r.status_code == 200
    assert r.get_json()["center"]["nameEn"] == "Test Center Casablanca"

    r = client.get("/api/centers/9999")
    assert r.status_code == 404


def test_create_center_requires_permission(user_client, csrf):
    r = user_client.post("/api/centers", json=_center(), headers=csrf(user_client))
    assert r.status_code == 403


def test_create_update_delete_center(admin_client, csrf):
    headers = csrf(admin_client)
    r = admin_client.post("/api/centers", json=_center(), headers=headers)
    assert r.status_code == 201
    center = r.get_json()["center"]
    assert center["isActive"] is True
    assert center["services"] == ["Contrôle technique automobile"]

    r = admin_client.patch(f"/api/centers/{center['id']}", json={"isActive": False, "city": "Oujda-Angad"}, headers=headers)
    assert r.status_code == 200
    assert r.get_json()["center"]["isActive"] is False
    assert r.get_json()["center"]["city"] == "Oujda-Angad"

    r = admin_client.patch(f"/api/centers/{center['id']}", json={"latitude": 200}, headers=headers)
    assert r.status_code == 400

    r = admin_client.delete(f"/api/centers/{center['id']}", headers=headers)
    assert r.status_code == 200
    assert admin_client.get(f"/api/centers/{center['id']}").status_code == 404


def test_delete_center_with_active_booking_refused(client, login, csrf, seed, make_booking):
    login(client, "user@example.com")
    make_booking(client, seed)
    client.get("/fr/auth/signout")

    login(client, "admin@example.com")
    r = client.delete(f"/api/centers/{seed['center']}", headers=csrf(client))
    assert r.status_code == 400
    assert r.get_json()["error"] == "Impossible de supprimer un centre avec des réservations actives"


def test_centers_page_requires_session(client, login):
    r = client.get("/fr/centers")
    assert r.status_code == 302
    login(client, "user@example.com")
    r = client.get("/fr/centers")
    assert r.status_code == 200
    assert "Centre Test Casablanca" in r.get_data(as_text=True)


def test_admin_centers_page_toggle(admin_client, csrf, seed):
    headers = csrf(admin_client)
    r = admin_client.post(
        f"/fr/admin/centers/{seed['center']}/toggle",
        data={"csrf_token": headers["X-CSRF-Token"]},
    )
    assert r.status_code == 302
    r = admin_client.get("/api/centers")
    assert r.get_json()["centers"] == []
