import itertools
from datetime import datetime, timedelta, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient
from passlib.context import CryptContext

import database
import main
import media

SHIPPING = {
    "street": "20 Ingram Street",
    "city": "Queens",
    "state": "NY",
    "zipCode": "11375",
    "country": "US",
}


@pytest.fixture
def mongo(monkeypatch):
    mock_db = mongomock.MongoClient()["marvel_store_test"]
    monkeypatch.setattr(database, "db", mock_db)
    monkeypatch.setattr(main, "db", mock_db)
    return mock_db


@pytest.fixture
def media_calls(monkeypatch):
    calls = {"uploaded": [], "destroyed": []}

    def fake_upload(upload):
        calls["uploaded"].append(upload.filename)
        n = len(calls["uploaded"])
        return {"url": f"https://res.cloudinary.com/demo/img{n}.png", "publicId": f"marvel-store/img{n}"}

    def fake_destroy(public_id):
        calls["destroyed"].append(public_id)

    monkeypatch.setattr(media, "upload_image", fake_upload)
    monkeypatch.setattr(media, "destroy_image", fake_destroy)
    return calls


@pytest.fixture
def client(mongo, media_calls, monkeypatch):
    # cheap hashes keep the suite fast
    monkeypatch.setattr(main, "pwd_context", CryptContext(schemes=["bcrypt"], bcrypt__rounds=4))
    return TestClient(main.app)


@pytest.fixture
def register(client, mongo):
    def _register(email="peter@example.com", password="webslinger", name="Peter Parker", role="user"):
        res = client.post("/api/users/register", json={"name": name, "email": email, "password": password})
        assert res.status_code == 201, res.text
        if role != "user":
            mongo["user"].update_one({"email": email}, {"$set": {"role": role}})
        return {"Authorization": f"Bearer {res.json()['token']}"}
    return _register


@pytest.fixture
def admin_headers(register):
    return register(email="nick@example.com", name="Nick Fury", role="admin")


@pytest.fixture
def make_product(mongo):
    counter = itertools.count()
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _make(**overrides):
        n = next(counter)
        doc = {
            "name": f"Product {n}",
            "description": "Official Marvel merchandise",
            "price": 20.0,
            "originalPrice": None,
            "category": "shirts",
            "character": "avengers",
            "images": [],
            "stock": 10,
            "sizes": ["M"],
            "colors": [],
            "rating": 0,
            "numReviews": 0,
            "featured": False,
            "isActive": True,
            "createdAt": base + timedelta(minutes=n),
            "updatedAt": base + timedelta(minutes=n),
        }
        doc.update(overrides)
        return mongo["product"].insert_one(doc).inserted_id
    return _make


@pytest.fixture
def shipping_address():
    return dict(SHIPPING)
