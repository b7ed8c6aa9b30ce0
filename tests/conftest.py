import mongomock
import pytest
from fastapi.testclient import TestClient

import security
from database import get_db, create_document
from errors import Unauthorized, UpstreamFailure
from main import app
from schemas import User, Store, Item, Location
from security import create_access_token, get_google_verifier
from storage import get_image_store


class FakeImageStore:
    def __init__(self):
        self.uploaded = []
        self.deleted = []
        self.fail_uploads = False
        self.fail_deletes = False

    def upload(self, file, subfolder=""):
        if self.fail_uploads:
            raise UpstreamFailure("Failed to upload image", details="Upload failed")
        image_id = f"{subfolder}/img{len(self.uploaded) + 1}"
        self.uploaded.append((image_id, file.read()))
        return {"imageId": image_id, "imageURL": f"https://images.example.com/{image_id}.jpg"}

    def delete(self, image_id):
        if self.fail_deletes:
            raise UpstreamFailure("Failed to delete image", details="Cloudinary error")
        self.deleted.append(image_id)


class FakeGoogleVerifier:
    def __init__(self):
        self.identities = {}

    def verify(self, id_token):
        if id_token not in self.identities:
            raise Unauthorized("Unauthorized: Invalid token")
        return self.identities[id_token]


@pytest.fixture
def db():
    return mongomock.MongoClient()["thrift_test"]


@pytest.fixture
def image_store():
    return FakeImageStore()


@pytest.fixture
def google_verifier():
    return FakeGoogleVerifier()


@pytest.fixture
def client(db, image_store, google_verifier):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_image_store] = lambda: image_store
    app.dependency_overrides[get_google_verifier] = lambda: google_verifier
    security.rate_store.clear()
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def auth_headers(user_id, role="customer"):
    return {"Authorization": f"Bearer {create_access_token({'sub': user_id, 'role': role})}"}


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role="customer", name=None):
        counter["n"] += 1
        user = User(name=name or f"{role} {counter['n']}", email=f"{role}{counter['n']}@example.com", role=role)
        user_id = create_document(db, "user", user)
        return user_id, auth_headers(user_id, role)
    return _make


@pytest.fixture
def make_store(db):
    def _make(owner_id, name="Second Chance"):
        store = Store(ownerId=owner_id, storeName=name, address="1 Main Road", location=Location(lat=-26.2, lng=28.0))
        return create_document(db, "store", store)
    return _make


@pytest.fixture
def make_item(db):
    def _make(store_id, **fields):
        data = {"name": "Denim Jacket", "price": 250.0, "quantity": 1, "category": "Outerwear"}
        data.update(fields)
        return create_document(db, "item", Item(storeId=store_id, **data))
    return _make


@pytest.fixture
def owner(make_user, make_store):
    owner_id, headers = make_user("storeOwner", name="Olive Owner")
    store_id = make_store(owner_id)
    return {"uid": owner_id, "headers": headers, "store_id": store_id}


@pytest.fixture
def customer(make_user):
    uid, headers = make_user("customer", name="Casey Customer")
    return {"uid": uid, "headers": headers}
