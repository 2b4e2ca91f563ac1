from app.visite.i18n import normalize_locale, split_locale, t


def test_split_locale():
    assert split_locale("/ar/admin/users") == ("ar", "/admin/users")
    assert split_locale("/en") == ("en", "/")
    assert split_locale("/fr/") == ("fr", "/")
    assert split_locale("/dashboard") == (None, "/dashboard")
    assert split_locale("/de/dashboard") == (None, "/de/dashboard")


def test_normalize_locale_defaults_to_french():
    assert normalize_locale("AR") == "ar"
    assert normalize_locale("de") == "fr"
    assert normalize_locale(None) == "fr"


def test_translation_fallbacks():
    assert t("nav.signin", "en") == "Sign in"
    assert t("nav.signin", "de") == "Connexion"
    assert t("no.such.key", "ar") == "no.such.key"


def test_arabic_pages_are_rtl(client):
    r = client.get("/ar/")
    assert r.status_code == 200
    html = r.get_data(as_text=True)
    assert 'dir="rtl"' in html
    assert 'lang="ar"' in html


def test_english_pages_are_ltr(client):
    r = client.get("/en/auth/signin")
    assert r.status_code == 200
    assert 'dir="ltr"' in r.get_data(as_text=True)


def test_unprefixed_page_redirects_to_best_locale(client):
    r = client.get("/dashboard?x=1", headers={"Accept-Language": "en-US,en;q=0.9"})
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/en/dashboard?x=1")


def test_unknown_locale_is_404(client):
    r = client.get("/de/dashboard")
    assert r.status_code == 404


def test_links_keep_current_locale(user_client):
    r = user_client.get("/ar/dashboard")
    assert r.status_code == 200
    html = r.get_data(as_text=True)
    assert 'href="/ar/cars"' in html
    assert 'href="/ar/bookings"' in html
