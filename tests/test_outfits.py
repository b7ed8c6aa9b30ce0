import pytest


SLOTS = ["item-a", None, None, "item-b", None, None, None, None, "item-c"]


def test_save_and_list_outfits(client, customer, make_user):
    _, other_headers = make_user("customer")

    res = client.post("/api/outfits", json={"slots": SLOTS}, headers=customer["headers"])

    assert res.status_code == 201
    assert res.json()["message"] == "Outfit saved"
    outfits = client.get("/api/outfits", headers=customer["headers"]).json()
    assert [o["outfitId"] for o in outfits] == [res.json()["outfitId"]]
    assert outfits[0]["slots"] == SLOTS
    assert client.get("/api/outfits", headers=other_headers).json() == []


@pytest.mark.parametrize("slots", [
    None,
    "item-a",
    SLOTS[:8],
    SLOTS + [None],
    ["", None, None, None, None, None, None, None, None],
    [1, None, None, None, None, None, None, None, None],
])
def test_invalid_slots(client, customer, slots):
    res = client.post("/api/outfits", json={"slots": slots}, headers=customer["headers"])

    assert res.status_code == 400
    assert res.json() == {"error": "Invalid slots array"}


def test_outfits_require_login(client):
    assert client.get("/api/outfits").status_code == 401
    assert client.post("/api/outfits", json={"slots": SLOTS}).status_code == 401
