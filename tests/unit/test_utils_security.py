from types import SimpleNamespace

from fastapi import FastAPI, Depends
from fastapi.testclient import TestClient

from deelauto.utils import security as security_mod
from deelauto.utils.security import (
    determine_role,
    get_current_user,
    require_admin,
    COOKIE_NAME,
)

def _make_app():
    app = FastAPI()

    @app.get("/me")
    def me(user=Depends(get_current_user)):
        return user

    @app.get("/admin")
    def admin(user=Depends(require_admin)):
        return {"ok": True}

    return app

def test_determine_role():
    assert determine_role({"role": "admin"}) == "admin"
    assert determine_role({"role": "ADMIN"}) == "admin"
    assert determine_role({"role": "scanner"}) == "user"
    assert determine_role(None) == "user"

def test_get_user_from_token_normalizes_supabase_user(mock_supabase):
    fake_user = SimpleNamespace(id="u1", email="jan@example.com", user_metadata={"role": "admin"})
    mock_supabase.auth.get_user.return_value = SimpleNamespace(user=fake_user)

    user = security_mod.get_user_from_token("tok")
    assert user == {
        "id": "u1",
        "email": "jan@example.com",
        "metadata": {"role": "admin"},
        "role": "admin",
        "token": "tok",
    }

def test_get_user_from_token_without_user(mock_supabase):
    mock_supabase.auth.get_user.return_value = SimpleNamespace(user=None)
    assert security_mod.get_user_from_token("tok") == {}

def test_get_current_user_bearer_success(monkeypatch):
    seen = []
    monkeypatch.setattr(
        security_mod, "get_user_from_token",
        lambda token: seen.append(token) or {"id": "u1", "email": "a@b", "role": "user"},
    )
    client = TestClient(_make_app())
    client.cookies.set(COOKIE_NAME, "cookie-token")

    r = client.get("/me", headers={"Authorization": "Bearer tok-123"})
    assert r.status_code == 200
    assert r.json() == {"id": "u1", "email": "a@b", "role": "user"}
    # Bearer prioritaire sur le cookie
    assert seen == ["tok-123"]

def test_get_current_user_cookie_success(monkeypatch):
    monkeypatch.setattr(security_mod, "get_user_from_token", lambda token: {"id": "u1", "role": "admin"})
    client = TestClient(_make_app())
    client.cookies.set(COOKIE_NAME, "cookie-token")

    r = client.get("/me")
    assert r.status_code == 200
    assert r.json()["role"] == "admin"

def test_get_current_user_missing_token_401():
    client = TestClient(_make_app())
    r = client.get("/me")
    assert r.status_code == 401
    assert "Non authentifié" in r.text

def test_get_current_user_rejected_token_401(monkeypatch):
    def boom(token):
        raise RuntimeError("invalid JWT")
    monkeypatch.setattr(security_mod, "get_user_from_token", boom)
    client = TestClient(_make_app())

    r = client.get("/me", headers={"Authorization": "Bearer tok"})
    assert r.status_code == 401
    assert "Session expirée" in r.text

def test_get_current_user_missing_id_401(monkeypatch):
    monkeypatch.setattr(security_mod, "get_user_from_token", lambda token: {"email": "x@y"})
    client = TestClient(_make_app())

    r = client.get("/me", headers={"Authorization": "Bearer tok"})
    assert r.status_code == 401

def test_require_admin_forbidden_and_allowed(monkeypatch):
    client = TestClient(_make_app())

    monkeypatch.setattr(security_mod, "get_user_from_token", lambda token: {"id": "u1", "role": "user"})
    assert client.get("/admin", headers={"Authorization": "Bearer tok"}).status_code == 403

    monkeypatch.setattr(security_mod, "get_user_from_token", lambda token: {"id": "u1", "role": "admin"})
    r_ok = client.get("/admin", headers={"Authorization": "Bearer tok"})
    assert r_ok.status_code == 200
    assert r_ok.json() == {"ok": True}
