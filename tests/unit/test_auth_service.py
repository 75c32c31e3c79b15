from types import SimpleNamespace

from backend.auth import service as auth_service


def test_get_user_from_token_normalizes_supabase_user(monkeypatch):
    user = SimpleNamespace(id="auth-9", email="jane@school.io", user_metadata={"first_name": "Jane", "last_name": "Doe"})
    fake_client = SimpleNamespace(auth=SimpleNamespace(get_user=lambda token: SimpleNamespace(user=user)))
    monkeypatch.setattr("backend.infra.supabase_client.get_supabase", lambda: fake_client)

    out = auth_service.get_user_from_token("tok")
    assert out["id"] == "auth-9"
    assert out["email"] == "jane@school.io"
    assert out["full_name"] == "Jane Doe"
    assert out["token"] == "tok"


def test_display_name_fallbacks():
    assert auth_service.display_name("x@school.io", {"full_name": " Ann Lee "}) == "Ann Lee"
    assert auth_service.display_name("x@school.io", {}) == "x"
    assert auth_service.display_name(None, None) == ""
