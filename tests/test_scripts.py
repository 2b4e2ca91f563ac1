import pytest

from scripts import release, start


def test_release_needs_database_url(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(RuntimeError):
        release.run_release()


def test_release_refuses_sqlite_in_production(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///prod.db")
    monkeypatch.setenv("ENV", "production")
    with pytest.raises(RuntimeError):
        release.run_release()


def test_start_port_parsing(monkeypatch):
    monkeypatch.delenv("PORT", raising=False)
    assert start._port() == 8080
    monkeypatch.setenv("PORT", "5000")
    assert start._port() == 5000
    monkeypatch.setenv("PORT", "99999")
    with pytest.raises(SystemExit):
        start._port()


def test_gunicorn_command_line():
    argv = start.gunicorn_argv(5000, "3")
    assert argv[:2] == ["gunicorn", "app.wsgi:app"]
    assert argv[argv.index("--bind") + 1] == "0.0.0.0:5000"
    assert argv[argv.index("--workers") + 1] == "3"
