import base64
import json
from datetime import datetime, timedelta, timezone

import pytest
from svix.webhooks import Webhook

from backend.users import service as users_service
from backend.users.service import InvalidIdentitySignature, verify_identity_signature

SECRET = "whsec_" + base64.b64encode(b"identity-test-secret").decode()


def _headers(body: bytes, secret: str = SECRET, ts: datetime = None, prefix: str = "svix"):
    ts = ts or datetime.now(timezone.utc)
    sig = Webhook(secret).sign("msg_1", ts, body.decode())
    return {f"{prefix}-id": "msg_1", f"{prefix}-timestamp": str(int(ts.timestamp())), f"{prefix}-signature": sig}


def _event(event_type="user.created"):
    return {
        "type": event_type,
        "data": {
            "id": "user_abc",
            "first_name": "Ada",
            "last_name": "Lovelace",
            "username": "ada",
            "primary_email_address_id": "em_2",
            "email_addresses": [
                {"id": "em_1", "email_address": "old@school.io"},
                {"id": "em_2", "email_address": "ada@school.io"},
            ],
        },
    }


def test_valid_signature_returns_event():
    body = json.dumps(_event()).encode()
    assert verify_identity_signature(body, _headers(body), SECRET)["type"] == "user.created"


def test_webhook_prefixed_headers_and_multiple_signatures():
    body = b'{"type":"user.updated"}'
    headers = _headers(body, prefix="webhook")
    headers["webhook-signature"] = "v1,bm90LWl0 " + headers["webhook-signature"]
    assert verify_identity_signature(body, headers, SECRET) == {"type": "user.updated"}


@pytest.mark.parametrize(
    "mutate",
    [
        lambda h, b: (h, b + b" "),
        lambda h, b: ({k: v for k, v in h.items() if k != "svix-signature"}, b),
        lambda h, b: (_headers(b, secret="whsec_" + base64.b64encode(b"other").decode()), b),
        lambda h, b: (_headers(b, ts=datetime.now(timezone.utc) - timedelta(minutes=10)), b),
        lambda h, b: (dict(h, **{"svix-timestamp": "yesterday"}), b),
        lambda h, b: (dict(h, **{"svix-signature": "garbage"}), b),
    ],
    ids=["tampered-body", "missing-header", "wrong-secret", "stale-timestamp", "bad-timestamp", "malformed-signature"],
)
def test_invalid_signatures_are_rejected(mutate):
    body = json.dumps(_event()).encode()
    headers, body = mutate(_headers(body), body)
    with pytest.raises(InvalidIdentitySignature):
        verify_identity_signature(body, headers, SECRET)


def test_missing_secret_rejects_everything():
    body = b"{}"
    with pytest.raises(InvalidIdentitySignature):
        verify_identity_signature(body, _headers(body), "")


def test_user_created_upserts_local_user(monkeypatch):
    calls = []
    monkeypatch.setattr(
        "backend.users.repository.upsert_user",
        lambda **kw: calls.append(kw) or {"id": "local-1", **kw},
    )
    row = users_service.handle_identity_event(_event())

    assert row["id"] == "local-1"
    assert calls == [{
        "auth_user_id": "user_abc",
        "email": "ada@school.io",
        "full_name": "Ada Lovelace",
        "username": "ada",
    }]


def test_other_events_are_ignored(monkeypatch):
    called = []
    monkeypatch.setattr("backend.users.repository.upsert_user", lambda **kw: called.append(kw))
    assert users_service.handle_identity_event(_event("user.deleted")) is None
    assert called == []


def test_upsert_error_propagates(monkeypatch):
    def _boom(**kw):
        raise RuntimeError("db down")

    monkeypatch.setattr("backend.users.repository.upsert_user", _boom)
    with pytest.raises(RuntimeError):
        users_service.handle_identity_event(_event("user.updated"))


def test_profile_prefers_local_row(monkeypatch, fake_user):
    monkeypatch.setattr(
        "backend.users.repository.get_user_by_auth_id",
        lambda auth_id: {"id": "local-1", "auth_user_id": auth_id, "email": "student@school.io", "learnworlds_user_id": "lw-9"},
    )
    profile = users_service.get_profile(fake_user)
    assert profile["synced"] is True
    assert profile["authUserId"] == "auth-user-1"
    assert profile["learnworldsUserId"] == "lw-9"


def test_profile_falls_back_to_identity_claims(monkeypatch, fake_user):
    monkeypatch.setattr("backend.users.repository.get_user_by_auth_id", lambda auth_id: None)
    profile = users_service.get_profile(fake_user)
    assert profile["synced"] is False
    assert profile["email"] == "student@school.io"
    assert profile["fullName"] == "Test Student"
