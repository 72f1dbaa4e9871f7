from powerbag import auth, notify
from powerbag.tests.conftest import TestingSessionLocal, auth_headers, create_user, ensure_auth_headers


def test_send_code_and_login(client):
    session = TestingSessionLocal()
    try:
        user = create_user(session, email="editor@example.com")
        user_id = user.id
    finally:
        session.close()

    assert client.get("/api/users/check-email/editor@example.com").json() == {"exists": True}
    assert client.get("/api/users/check-email/nobody@example.com").json() == {"exists": False}

    resp = client.post(
        "/api/users/send-code",
        json={"email": "Editor@Example.com", "magic_link": "http://app.example/login"},
    )
    assert resp.status_code == 200
    mail = notify.EMAIL_OUTBOX[-1]
    assert mail["to"] == "editor@example.com"
    assert mail["template"] == "Powerbag_signin_code"
    code = mail["vars"]["CODE"]
    assert mail["vars"]["MAGICLINK"].startswith("http://app.example/login?")

    bad = client.post("/api/users/login", json={"email": "editor@example.com", "code": "not-a-code"})
    assert bad.status_code == 401

    resp = client.post("/api/users/login", json={"email": "editor@example.com", "code": code})
    assert resp.status_code == 200
    token = resp.json()["access_token"]
    me = client.get("/api/users/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["id"] == str(user_id)


def test_send_code_unknown_user(client):
    resp = client.post("/api/users/send-code", json={"email": "ghost@example.com"})
    assert resp.status_code == 404
    assert notify.EMAIL_OUTBOX == []


def test_token_roundtrip_and_garbage():
    session = TestingSessionLocal()
    try:
        user = create_user(session, admin=True)
        claims = auth.decode_access_token(auth.create_access_token(user))
    finally:
        session.close()
    assert claims["sub"] == str(user.id)
    assert claims["roles"] == ["admin"]
    assert auth.decode_access_token("not-a-token") is None


def test_admin_user_management(client):
    admin_headers, _ = ensure_auth_headers(admin=True)
    editor_headers, _ = ensure_auth_headers()

    resp = client.post(
        "/api/users/", json={"email": "New@Example.com", "name": "New"}, headers=admin_headers
    )
    assert resp.status_code == 200
    created = resp.json()
    assert created["email"] == "new@example.com"
    dup = client.post("/api/users/", json={"email": "new@example.com"}, headers=admin_headers)
    assert dup.status_code == 409

    assert client.get("/api/users/", headers=editor_headers).status_code == 403
    listing = client.get("/api/users/", headers=admin_headers).json()
    assert created["id"] in [u["id"] for u in listing]

    assert client.delete(f"/api/users/{created['id']}", headers=admin_headers).status_code == 204
    assert client.get(f"/api/users/{created['id']}", headers=admin_headers).status_code == 404


def test_invalid_token_is_rejected(client):
    resp = client.get("/api/users/me", headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401


def test_auth_headers_for_existing_user(client):
    session = TestingSessionLocal()
    try:
        user = create_user(session)
        headers = auth_headers(user)
    finally:
        session.close()
    assert client.get("/api/users/me", headers=headers).status_code == 200
