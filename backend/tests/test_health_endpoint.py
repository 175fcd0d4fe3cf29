"""Tests for health endpoints and API-wide error handling."""
from liquidapp.config import Settings, settings


def test_root_health(api_client):
    resp = api_client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "version": settings.VERSION}


def test_api_health_reports_vision_and_db(api_client, monkeypatch):
    monkeypatch.setattr(settings, "VISION_API_KEY", None)
    resp = api_client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["vision_configured"] is False
    assert data["database"]["status"] == "ok"


def test_unknown_route_uses_error_body(api_client):
    resp = api_client.get("/api/v1/no-existe")
    assert resp.status_code == 404
    assert resp.json()["code"] == "http_error"


def test_api_key_required_when_configured(api_client, monkeypatch):
    monkeypatch.setattr(settings, "LIQUIDAPP_API_KEY", "secret")
    resp = api_client.post("/api/v1/siniestros", json={})
    assert resp.status_code == 401
    assert resp.json()["code"] == "unauthorized"

    assert api_client.get("/health").status_code == 200


def test_settings_defaults():
    s = Settings(DATABASE_URL="sqlite:///test.db", _env_file=None)
    assert s.SIGNED_URL_TTL_SECONDS == 3600
    assert s.VISION_TIMEOUT_SECONDS == 60.0
    assert s.ORPHAN_GRACE_MINUTES == 60
    assert s.LIQUIDAPP_API_KEY is None
    assert s.RATE_LIMIT_DEFAULT == "60/minute"


def test_default_rate_limit_is_enforced(api_client):
    for _ in range(60):
        assert api_client.get("/health").status_code == 200
    resp = api_client.get("/health")
    assert resp.status_code == 429
