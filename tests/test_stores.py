import json

from bson import ObjectId


STORE_FORM = {
    "storeName": "Hand Me Down",
    "address": "12 Long Street",
    "location": json.dumps({"lat": -33.92, "lng": 18.42}),
}


def test_owner_creates_store_with_profile_image(client, db, make_user, image_store):
    owner_id, headers = make_user("storeOwner")

    res = client.post("/api/stores", data=STORE_FORM, files={"profileImage": ("logo.png", b"png", "image/png")},
                      headers=headers)

    assert res.status_code == 200
    body = res.json()
    assert body["ownerId"] == owner_id
    assert body["theme"] == "theme-default"
    assert body["hours"]["sunday"]["closed"] is True
    assert body["profileImageURL"].startswith("https://images.example.com/stores/")
    assert db["store"].count_documents({"ownerId": owner_id}) == 1


def test_second_post_updates_existing_store(client, db, owner):
    res = client.post("/api/stores", data={**STORE_FORM, "storeName": "Renamed"}, headers=owner["headers"])

    assert res.status_code == 200
    assert res.json()["storeId"] == owner["store_id"]
    assert res.json()["storeName"] == "Renamed"
    assert db["store"].count_documents({"ownerId": owner["uid"]}) == 1


def test_store_requires_fields(client, owner):
    res = client.post("/api/stores", data={"storeName": "Only a name"}, headers=owner["headers"])

    assert res.status_code == 400
    assert res.json() == {"error": "Missing required fields: storeName, address, location"}


def test_store_rejects_bad_location(client, owner):
    res = client.post("/api/stores", data={**STORE_FORM, "location": "nowhere"}, headers=owner["headers"])

    assert res.status_code == 400


def test_customers_cannot_create_stores(client, customer):
    res = client.post("/api/stores", data=STORE_FORM, headers=customer["headers"])

    assert res.status_code == 403
    assert res.json() == {"error": "User is not a store owner"}


def test_my_store(client, owner, make_user):
    _, headers = make_user("storeOwner")

    mine = client.get("/api/my-store", headers=owner["headers"])
    none = client.get("/api/my-store", headers=headers)

    assert mine.json()["storeId"] == owner["store_id"]
    assert none.status_code == 404
    assert none.json() == {"error": "Store not found. Please create a store."}


def test_list_and_get_stores(client, owner):
    listed = client.get("/api/stores")
    single = client.get(f"/api/stores/{owner['store_id']}")
    missing = client.get(f"/api/stores/{ObjectId()}")
    malformed = client.get("/api/stores/not-an-id")

    assert [s["storeId"] for s in listed.json()] == [owner["store_id"]]
    assert single.json()["storeName"] == "Second Chance"
    assert missing.status_code == 404
    assert missing.json() == {"error": "Store not found"}
    assert malformed.status_code == 404


def test_upload_image(client, customer):
    empty = client.post("/api/stores/upload-image", headers=customer["headers"])
    uploaded = client.post("/api/stores/upload-image", files={"profileImage": ("a.jpg", b"jpg", "image/jpeg")},
                           headers=customer["headers"])

    assert empty.status_code == 400
    assert empty.json() == {"error": "No image provided"}
    assert uploaded.json()["imageURL"].endswith(".jpg")


def test_upload_failure_is_reported_with_details(client, customer, image_store):
    image_store.fail_uploads = True

    res = client.post("/api/stores/upload-image", files={"profileImage": ("a.jpg", b"jpg", "image/jpeg")},
                      headers=customer["headers"])

    assert res.status_code == 500
    assert res.json() == {"error": "Failed to upload image", "details": "Upload failed"}


def test_contact_infos(client, owner, customer):
    created = client.post("/api/stores/contact-infos", json={"type": "phone", "value": "0821234567"},
                          headers=owner["headers"])
    missing = client.post("/api/stores/contact-infos", json={"type": "phone"}, headers=owner["headers"])
    bad_type = client.post("/api/stores/contact-infos", json={"type": "fax", "value": "1"}, headers=owner["headers"])
    no_store = client.get("/api/stores/contact-infos", headers=customer["headers"])

    assert created.status_code == 201
    assert missing.json() == {"error": "Missing required fields: type, value"}
    assert bad_type.status_code == 400
    assert no_store.status_code == 404

    listed = client.get("/api/stores/contact-infos", headers=owner["headers"]).json()
    assert [c["value"] for c in listed] == ["0821234567"]

    deleted = client.delete(f"/api/stores/contact-infos/{created.json()['id']}", headers=owner["headers"])
    assert deleted.json() == {"message": "Contact info deleted successfully"}
    assert client.get("/api/stores/contact-infos", headers=owner["headers"]).json() == []
