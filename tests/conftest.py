"""Shared pytest fixtures for the marketplace API tests."""

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import Database
from dependencies import get_db
from main import app


@pytest.fixture
def db():
    """An in-memory database with the production indexes."""
    database = Database(mongomock.MongoClient()["marketplace_test"])
    database.ensure_indexes()
    return database


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def register_and_login(client):
    """Register a principal of the given kind and return (principal, headers)."""
    def _register(prefix="customer", email="jane@example.com", phone="5550001", password="s3cret-pass", headers=None, **extra):
        body = {"name": "Jane Doe", "email": email, "phone": phone, "password": password, **extra}
        resp = client.post(f"/api/{prefix}/register", json=body, headers=headers or {})
        assert resp.status_code == 201, resp.text
        resp = client.post(f"/api/{prefix}/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.text
        data = resp.json()
        principal = next(v for k, v in data.items() if k not in ("message", "token"))
        return principal, auth_header(data["token"])
    return _register


@pytest.fixture
def customer(register_and_login):
    """A registered customer: (user, headers)."""
    return register_and_login("auth")


@pytest.fixture
def store(client, customer):
    """A store owned by the `customer` fixture."""
    _, headers = customer
    resp = client.post(
        "/api/stores/add",
        json={"name": "Corner Shop", "city": "Pune", "address": "1 Main St", "longitude": 73.85, "latitude": 18.52},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["store"]


@pytest.fixture
def product_body(store):
    return {
        "name": "Basmati Rice",
        "category": "Grains",
        "image": "https://example.com/rice.jpg",
        "store_id": store["_id"],
        "quantities": [{"quantity": 1, "price": 120}, {"quantity": 5, "price": 550}],
    }
