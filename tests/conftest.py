import itertools

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import main
from database import create_document, get_document_by_id
from schemas import Dish, User
from security import create_token, hash_password

PASSWORD = "secret123"
PASSWORD_HASH = hash_password(PASSWORD)


@pytest.fixture(autouse=True)
def mongo(monkeypatch):
    client = mongomock.MongoClient()
    test_db = client["chefs_bd_test"]
    monkeypatch.setattr(database, "_client", client)
    monkeypatch.setattr(database, "db", test_db)
    monkeypatch.setattr(database, "USE_TRANSACTIONS", False)
    return test_db


@pytest.fixture
def client():
    return TestClient(main.app)


@pytest.fixture
def make_user():
    counter = itertools.count(1)

    def _make(role="buyer", **fields):
        n = next(counter)
        data = {
            "name": f"{role.title()} {n}",
            "email": f"{role}{n}@example.com",
            "password_hash": PASSWORD_HASH,
            "role": role,
        }
        if role == "seller":
            data.update(shop_name=f"Kitchen {n}", shop_address="Station Road, Rangpur")
        data.update(fields)
        user = get_document_by_id("user", create_document("user", User(**data)))
        return user, {"Authorization": f"Bearer {create_token(user)}"}

    return _make


@pytest.fixture
def make_dish():
    def _make(seller, **fields):
        data = {
            "name": "Beef Tehari",
            "description": "Slow cooked beef with aromatic rice",
            "images": ["https://res.cloudinary.com/demo/image/upload/tehari.jpg"],
            "price": 250.0,
            "category": "Biryani",
            "seller_id": seller["_id"],
            "delivery_time": "30-40 min",
            "commission_percentage": 10,
        }
        data.update(fields)
        return get_document_by_id("dish", create_document("dish", Dish(**data)))

    return _make
