import pytest

from auth_service.security import create_token, hash_password, verify_password
from shared.errors import Unauthorized


def test_register_returns_user_id(client):
    r = client.post("/api/auth/register", json={"handle": "alice", "password": "pw1"})
    assert r.status_code == 201
    assert isinstance(r.json()["userId"], int)


def test_register_duplicate_handle_conflicts(client):
    client.post("/api/auth/register", json={"handle": "alice", "password": "pw1"})
    r = client.post("/api/auth/register", json={"handle": "alice", "password": "other"})
    assert r.status_code == 409
    assert r.json()["kind"] == "conflict"


def test_register_rejects_bad_input(client):
    assert client.post("/api/auth/register", json={"handle": "a", "password": "pw1"}).status_code == 422
    assert client.post("/api/auth/register", json={"handle": "alice", "password": ""}).status_code == 422
    too_long = "é" * 40  # 80 bytes
    assert client.post("/api/auth/register", json={"handle": "alice", "password": too_long}).status_code == 422


def test_login_success_and_failures_look_the_same(client):
    client.post("/api/auth/register", json={"handle": "alice", "password": "pw1"})

    ok = client.post("/api/auth/login", json={"handle": "alice", "password": "pw1"})
    assert ok.status_code == 200
    assert ok.json()["token"]
    assert ok.json()["tokenType"] == "bearer"

    wrong = client.post("/api/auth/login", json={"handle": "alice", "password": "wrong"})
    unknown = client.post("/api/auth/login", json={"handle": "nobody", "password": "pw1"})
    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json()


def test_password_is_stored_hashed(ctx):
    from auth_service.crud import get_user_by_handle

    ctx.credentials.register("carol", "secret")
    with ctx.SessionLocal() as db:
        user = get_user_by_handle(db, "carol")
    assert user.password_hash != "secret"
    assert verify_password("secret", user.password_hash)


def test_verify_password_edge_cases():
    h = hash_password("pw")
    assert verify_password("pw", h)
    assert not verify_password("nope", h)
    assert not verify_password("pw", None)
    assert not verify_password("pw", "not-a-hash")


def test_chat_routes_require_bearer_token(client):
    assert client.get("/api/chat/conversations").status_code == 401
    r = client.get("/api/chat/conversations", headers={"Authorization": "Token abc"})
    assert r.status_code == 401
    r = client.get("/api/chat/conversations", headers={"Authorization": "Bearer not.a.jwt"})
    assert r.status_code == 401
    assert r.json()["kind"] == "unauthorized"


def test_expired_token_is_rejected(client, ctx):
    uid = ctx.credentials.register("dave", "pw")
    s = ctx.settings
    expired = create_token(uid, s.secret_key, s.jwt_algorithm, expires_minutes=-1)
    r = client.get("/api/chat/conversations", headers={"Authorization": f"Bearer {expired}"})
    assert r.status_code == 401


def test_token_signed_with_other_key_is_rejected(client, ctx):
    uid = ctx.credentials.register("erin", "pw")
    forged = create_token(uid, "another-secret", ctx.settings.jwt_algorithm, expires_minutes=5)
    r = client.get("/api/chat/conversations", headers={"Authorization": f"Bearer {forged}"})
    assert r.status_code == 401


def test_token_for_unknown_user_is_rejected(client, ctx):
    s = ctx.settings
    token = create_token(9999, s.secret_key, s.jwt_algorithm, expires_minutes=5)
    r = client.get("/api/chat/conversations", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401


def test_health_is_public(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json()["status"] == "healthy"


def test_unknown_handle_still_costs_one_bcrypt_check(ctx, monkeypatch):
    import bcrypt

    ctx.credentials.register("judy", "pw")
    calls = []

    def counting_checkpw(password, hashed):
        calls.append(hashed)
        return False

    monkeypatch.setattr(bcrypt, "checkpw", counting_checkpw)

    with pytest.raises(Unauthorized):
        ctx.credentials.login("nobody", "pw")
    assert len(calls) == 1

    with pytest.raises(Unauthorized):
        ctx.credentials.login("judy", "wrong")
    assert len(calls) == 2


def test_rejected_token_is_logged(client, caplog):
    caplog.set_level("INFO", logger="api-gateway")
    r = client.get("/api/chat/conversations", headers={"Authorization": "Bearer not.a.jwt"})
    assert r.status_code == 401
    assert "Rejected token on GET /api/chat/conversations" in caplog.text
