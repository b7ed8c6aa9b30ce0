import config


def test_seed_is_refused_by_default(client, db):
    res = client.post("/api/seed")

    assert res.status_code == 403
    assert res.json() == {"error": "Seeding is disabled"}
    assert db["user"].count_documents({}) == 0


def test_seed_is_refused_in_production_even_when_enabled(client, db, monkeypatch):
    monkeypatch.setattr(config, "SEED_ENABLED", True)
    monkeypatch.setattr(config, "ENVIRONMENT", "production")

    assert client.post("/api/seed").status_code == 403
    assert db["store"].count_documents({}) == 0


def test_seed_creates_demo_stores_without_an_admin(client, db, monkeypatch):
    monkeypatch.setattr(config, "SEED_ENABLED", True)
    monkeypatch.setattr(config, "SEED_ADMIN_PASSWORD", None)

    res = client.post("/api/seed")

    assert res.status_code == 200
    assert res.json()["created"] == {"users": 3, "stores": 3, "items": 15}
    assert db["user"].count_documents({"role": "admin"}) == 0


def test_seeded_admin_uses_configured_password(client, monkeypatch):
    monkeypatch.setattr(config, "SEED_ENABLED", True)
    monkeypatch.setattr(config, "SEED_ADMIN_PASSWORD", "a-long-local-secret")
    client.post("/api/seed")

    old_default = client.post("/api/auth/login", json={"email": config.SEED_ADMIN_EMAIL, "password": "Admin@123"})
    configured = client.post("/api/auth/login",
                             json={"email": config.SEED_ADMIN_EMAIL, "password": "a-long-local-secret"})

    assert old_default.status_code == 401
    assert configured.status_code == 200
    assert configured.json()["user"]["role"] == "admin"
