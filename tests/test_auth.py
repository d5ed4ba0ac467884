from conftest import auth_header, make_user

from app.core.security import ACCESS, create_access_token, create_refresh_token, decode_token


def test_login_me_and_refresh(client, db):
    user = make_user(db, email="owner@example.com", role="salon_owner")
    r = client.post("/api/v1/auth/login", json={"email": "Owner@Example.com", "password": "password123"})
    assert r.status_code == 200
    tokens = r.json()

    me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {tokens['access_token']}"})
    assert me.json()["id"] == user.id
    assert me.json()["role"] == "salon_owner"

    refreshed = client.post("/api/v1/auth/refresh", params={"refresh_token": tokens["refresh_token"]})
    assert refreshed.status_code == 200


def test_bad_password(client, db):
    make_user(db, email="c@example.com")
    r = client.post("/api/v1/auth/login", json={"email": "c@example.com", "password": "nope"})
    assert r.status_code == 401


def test_refresh_token_is_not_an_access_token(client, db):
    user = make_user(db)
    r = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {create_refresh_token(user.id)}"})
    assert r.status_code == 401


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_access_token_carries_role(db):
    user = make_user(db, role="admin")
    payload = decode_token(create_access_token(user.id, user.role), ACCESS)
    assert payload["sub"] == user.id
    assert payload["role"] == "admin"


def test_token_issued_for_old_role_is_rejected(client, db):
    user = make_user(db, role="admin")
    headers = auth_header(user)
    user.role = "customer"
    db.commit()
    r = client.get("/api/v1/auth/me", headers=headers)
    assert r.status_code == 401


def test_access_token_cannot_refresh(client, db):
    user = make_user(db)
    r = client.post("/api/v1/auth/refresh", params={"refresh_token": create_access_token(user.id, user.role)})
    assert r.status_code == 401
