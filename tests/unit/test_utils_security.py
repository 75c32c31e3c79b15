from fastapi import FastAPI, Depends
from fastapi.testclient import TestClient

from backend.utils.security import get_current_user, COOKIE_NAME


def _make_app():
    app = FastAPI()

    @app.get("/me")
    def me(user=Depends(get_current_user)):
        return user

    return app


def test_missing_token_is_401():
    client = TestClient(_make_app())
    r = client.get("/me")
    assert r.status_code == 401
    assert r.json()["detail"] == "Authentication required"


def test_bearer_token_is_resolved(monkeypatch):
    seen = {}

    def _fake_get_user_from_token(token):
        seen["token"] = token
        return {"id": "auth-1", "email": "a@school.io", "full_name": "A", "metadata": {}}

    monkeypatch.setattr("backend.auth.service.get_user_from_token", _fake_get_user_from_token)
    client = TestClient(_make_app())
    r = client.get("/me", headers={"Authorization": "Bearer tok-123"})
    assert r.status_code == 200
    assert r.json()["id"] == "auth-1"
    assert seen["token"] == "tok-123"


def test_cookie_fallback(monkeypatch):
    monkeypatch.setattr(
        "backend.auth.service.get_user_from_token",
        lambda token: {"id": "auth-2", "email": "b@school.io"},
    )
    client = TestClient(_make_app())
    client.cookies.set(COOKIE_NAME, "cookie-token")
    assert client.get("/me").json()["id"] == "auth-2"


def test_invalid_token_is_401(monkeypatch):
    def _boom(token):
        raise RuntimeError("invalid JWT")

    monkeypatch.setattr("backend.auth.service.get_user_from_token", _boom)
    client = TestClient(_make_app())
    r = client.get("/me", headers={"Authorization": "Bearer bad"})
    assert r.status_code == 401


def test_user_without_id_is_401(monkeypatch):
    monkeypatch.setattr("backend.auth.service.get_user_from_token", lambda token: {"id": None})
    client = TestClient(_make_app())
    assert client.get("/me", headers={"Authorization": "Bearer x"}).status_code == 401
