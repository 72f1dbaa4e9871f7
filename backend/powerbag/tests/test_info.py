from powerbag.tests.conftest import ensure_auth_headers


def test_info_lifecycle(client):
    headers, _ = ensure_auth_headers()
    assert client.get("/api/info/").status_code == 404

    missing = client.post("/api/info/", json={"en": "About", "nl": " "}, headers=headers)
    assert missing.status_code == 400

    resp = client.post("/api/info/", json={"en": "About", "nl": "Over"}, headers=headers)
    assert resp.status_code == 200
    again = client.post("/api/info/", json={"en": "x", "nl": "y"}, headers=headers)
    assert again.status_code == 409

    updated = client.put("/api/info/", json={"en": "About us", "nl": "Over ons"}, headers=headers)
    assert updated.json()["en"] == "About us"

    public = client.get("/api/info/")
    assert public.status_code == 200
    assert public.json()["nl"] == "Over ons"


def test_info_write_requires_auth(client):
    assert client.post("/api/info/", json={"en": "a", "nl": "b"}).status_code == 401
