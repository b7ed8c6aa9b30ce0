import pytest

import config


@pytest.fixture
def api_key(monkeypatch):
    monkeypatch.setattr(config, "EXTERNAL_API_KEY", "partner-key")
    return {"x-api-key": "partner-key"}


def test_public_store_listing(client, owner):
    res = client.get("/api/external/stores")

    assert res.status_code == 200
    assert [s["storeId"] for s in res.json()] == [owner["store_id"]]


def test_upload_and_list_photos(client, db, api_key):
    res = client.post("/api/external/upload", files={"image": ("pic.jpg", b"jpg", "image/jpeg")}, headers=api_key)

    assert res.status_code == 201
    assert res.json()["imageURL"].startswith("https://images.example.com/external/")
    photos = client.get("/api/external/photos", headers=api_key).json()
    assert [p["imageId"] for p in photos] == [res.json()["imageId"]]


def test_upload_requires_image(client, api_key):
    res = client.post("/api/external/upload", headers=api_key)

    assert res.status_code == 400
    assert res.json() == {"error": "No image provided"}


@pytest.mark.parametrize("headers", [{}, {"x-api-key": "wrong"}])
def test_api_key_is_checked(client, api_key, headers):
    upload = client.post("/api/external/upload", files={"image": ("pic.jpg", b"jpg", "image/jpeg")}, headers=headers)
    listing = client.get("/api/external/photos", headers=headers)

    assert upload.status_code == 401
    assert upload.json() == {"error": "Invalid or missing API key"}
    assert listing.status_code == 401


def test_unconfigured_key_rejects_everything(client, monkeypatch):
    monkeypatch.setattr(config, "EXTERNAL_API_KEY", None)

    res = client.get("/api/external/photos", headers={"x-api-key": ""})

    assert res.status_code == 401
