# tests/test_login_api.py
from datetime import datetime, timedelta, timezone

import jwt
from passlib.hash import bcrypt as bcrypt_hash

from qvslv.core import security
from qvslv.core.errors import InternalError
from qvslv.core.models import User
from qvslv.services import users as user_store
from tests.helpers import auth_header, register_payload


def _register(client, **overrides):
    r = client.post("/api/auth/register", json=register_payload(**overrides))
    assert r.status_code == 201, r.text
    return r.json()["user"]


def _login(client, username="neo", password="matrix1"):
    return client.post("/api/auth/login", json={"username": username, "password": password})


def test_end_to_end_register_login_verify(client):
    user = _register(client)
    assert user["role"] == "VERIFIED"

    r = _login(client, "NEO", "matrix1")
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["token"]
    assert data["user"]["loginCount"] == 1
    assert data["user"]["lastLogin"]
    assert data["user"]["username"] == "neo"

    r = client.get("/api/auth/verify", headers=auth_header(data["token"]))
    assert r.status_code == 200
    assert r.json()["valid"] is True
    assert r.json()["user"]["username"] == "neo"
    assert "email" not in r.json()["user"]

    r = _login(client, "neo", "wrong")
    assert r.status_code == 401


def test_login_token_claims_and_expiry(client):
    user = _register(client)
    data = _login(client).json()

    claims = jwt.decode(data["token"], security.get_secret_key(), algorithms=["HS256"])
    assert claims["sub"] == user["id"]
    assert claims["username"] == "neo"
    assert claims["role"] == "VERIFIED"
    assert "iat" in claims and "exp" in claims

    expires_at = datetime.fromisoformat(data["expiresAt"])
    remaining = expires_at - datetime.now(timezone.utc)
    assert timedelta(hours=23) < remaining <= timedelta(hours=24)


def test_login_username_case_insensitive(client):
    _register(client, username="alice", email="alice@x.com")
    for name in ("alice", "ALICE", "Alice", " alice "):
        assert _login(client, name).status_code == 200


def test_login_count_increments(client):
    _register(client)
    _login(client)
    _login(client)
    assert _login(client).json()["user"]["loginCount"] == 3


def test_unknown_user_and_bad_password_look_the_same(client):
    _register(client)
    unknown = _login(client, "morpheus", "matrix1")
    bad = _login(client, "neo", "matrix2")
    assert unknown.status_code == bad.status_code == 401
    assert unknown.json() == bad.json()
    assert unknown.json()["error"] == "Invalid credentials"


def test_missing_login_fields(client):
    assert client.post("/api/auth/login", json={"username": "neo"}).status_code == 400
    assert client.post("/api/auth/login", json={"password": "matrix1"}).status_code == 400
    assert client.post("/api/auth/login", json={"username": "  ", "password": "x"}).status_code == 400


def test_disabled_account_is_forbidden(client, db):
    _register(client)
    row = db.query(User).filter(User.username == "neo").one()
    row.is_active = False
    db.commit()

    r = _login(client)
    assert r.status_code == 403
    assert r.json()["code"] == "account_disabled"

    # 凭据错误依旧是 401
    assert _login(client, "nobody", "matrix1").status_code == 401


def test_disabled_account_fails_verify(client, db):
    _register(client)
    token = _login(client).json()["token"]
    row = db.query(User).filter(User.username == "neo").one()
    row.is_active = False
    db.commit()

    assert client.get("/api/auth/verify", headers=auth_header(token)).status_code == 401


def test_legacy_cost_hash_is_upgraded_on_login(client, db):
    _register(client)
    row = db.query(User).filter(User.username == "neo").one()
    row.password_hash = bcrypt_hash.using(rounds=4).hash("matrix1")
    db.commit()

    assert _login(client).status_code == 200
    db.expire_all()
    row = db.query(User).filter(User.username == "neo").one()
    assert row.password_hash.startswith("$2b$05$")
    assert security.verify_password("matrix1", row.password_hash)


def test_verify_requires_token(client):
    r = client.get("/api/auth/verify")
    assert r.status_code == 401


def test_verify_rejects_garbage_and_expired_tokens(client):
    user = _register(client)
    assert client.get("/api/auth/verify", headers=auth_header("garbage")).status_code == 401

    expired, _ = security.issue_token(
        {"sub": user["id"], "username": "neo", "role": "VERIFIED"}, ttl=timedelta(seconds=-1),
    )
    r = client.get("/api/auth/verify", headers=auth_header(expired))
    assert r.status_code == 401
    assert r.json()["code"] == "invalid_token"


def test_verify_rejects_token_for_unknown_user(client):
    token, _ = security.issue_token({"sub": "no-such-user", "username": "ghost", "role": "VERIFIED"})
    assert client.get("/api/auth/verify", headers=auth_header(token)).status_code == 401


def test_verify_does_not_mutate_user(client, db):
    _register(client)
    token = _login(client).json()["token"]
    before = db.query(User).filter(User.username == "neo").one()
    snapshot = (before.login_count, before.last_login, before.updated_at)

    assert client.get("/api/auth/verify", headers=auth_header(token)).status_code == 200
    db.expire_all()
    after = db.query(User).filter(User.username == "neo").one()
    assert (after.login_count, after.last_login, after.updated_at) == snapshot


def test_profile_includes_private_fields(client):
    _register(client)
    token = _login(client).json()["token"]
    r = client.get("/api/auth/profile", headers=auth_header(token))
    assert r.status_code == 200
    user = r.json()["user"]
    assert user["email"] == "neo@x.com"
    assert user["motivation"] == "follow the white rabbit"
    assert user["createdAt"]
    assert "password_hash" not in user


def test_profile_requires_token(client):
    assert client.get("/api/auth/profile").status_code == 401


def test_logout_with_and_without_token(client):
    _register(client)
    token = _login(client).json()["token"]
    assert client.post("/api/auth/logout", headers=auth_header(token)).status_code == 200
    assert client.post("/api/auth/logout").status_code == 200
    assert client.post("/api/auth/logout", headers=auth_header("garbage")).status_code == 200


def test_store_failure_is_generic_500(client, monkeypatch):
    def _down(db, username):
        raise InternalError()

    monkeypatch.setattr(user_store, "find_by_username_ci", _down)
    r = _login(client)
    assert r.status_code == 500
    assert r.json() == {"error": "Internal server error", "code": "internal_error"}


def test_health_and_unknown_route(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json()["status"] == "OK"

    r = client.get("/api/nope")
    assert r.status_code == 404
    assert r.json() == {"error": "Route not found"}
