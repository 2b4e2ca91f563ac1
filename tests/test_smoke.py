def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True


def test_healthz_ok(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_root_redirects_to_locale(client):
    r = client.get("/")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/fr/")

    r = client.get("/", headers={"Accept-Language": "ar,fr;q=0.5"})
    assert r.headers["Location"].endswith("/ar/")


def test_home_page_lists_centers(client):
    r = client.get("/fr/")
    assert r.status_code == 200
    assert "Centre Test Casablanca" in r.get_data(as_text=True)


def test_login_and_admin_access(client, login):
    # Anonymous should be sent to sign-in
    r = client.get("/fr/admin/")
    assert r.status_code in (302, 403)
    assert "/fr/auth/signin" in r.headers["Location"]

    # Login
    r = login(client, "admin@example.com")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/fr/admin")

    # Now admin should be accessible
    r = client.get("/fr/admin/")
    assert r.status_code == 200


def test_user_lands_on_dashboard(client, login):
    r = login(client, "user@example.com")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/fr/dashboard")

    r = client.get("/fr/dashboard")
    assert r.status_code == 200
    assert "Yassine Alaoui" in r.get_data(as_text=True)


def test_unknown_api_path_is_json_404(client):
    r = client.get("/api/does-not-exist")
    assert r.status_code == 404
    assert r.get_json() == {"error": "Not found"}
