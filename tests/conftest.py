import os
import tempfile
from pathlib import Path

import pytest

_TMP = Path(tempfile.mkdtemp(prefix="storefront-tests-"))
DB_PATH = _TMP / "storefront_test.db"

os.environ["STOREFRONT_DATABASE_URL"] = f"sqlite+aiosqlite:///{DB_PATH}"
os.environ["STOREFRONT_CELERY_ALWAYS_EAGER"] = "true"
os.environ["STOREFRONT_CELERY_RESULT_BACKEND"] = "cache+memory://"
os.environ["STOREFRONT_PASSWORD_HASH_ROUNDS"] = "4"
os.environ["STOREFRONT_JWT_SECRET"] = "test-secret"
os.environ["STOREFRONT_ADMIN_EMAIL"] = "admin@kaizenshop.com"
os.environ["STOREFRONT_ADMIN_PASSWORD"] = "admin123"
os.environ.pop("STOREFRONT_REDIS_URL", None)

from fastapi.testclient import TestClient  # noqa: E402

from storefront import cache  # noqa: E402
from storefront.main import app  # noqa: E402

ADMIN_EMAIL = "admin@kaizenshop.com"
ADMIN_PASSWORD = "admin123"


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def register(client, email="fighter@example.com", password="secret123", name="Jake Thompson"):
    response = client.post("/api/auth/register", json={"email": email, "password": password, "name": name})
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.fixture
def client():
    # Fresh schema per test; the lifespan recreates tables and the admin
    if DB_PATH.exists():
        DB_PATH.unlink()
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers(client):
    response = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert response.status_code == 200, response.text
    return bearer(response.json()["data"]["access_token"])


@pytest.fixture
def user(client):
    return register(client)


@pytest.fixture
def user_headers(user):
    return bearer(user["access_token"])


@pytest.fixture
def make_category(client, admin_headers):
    def _make(name="Electronics", is_active=True, description=None):
        response = client.post(
            "/api/categories",
            json={"name": name, "is_active": is_active, "description": description},
            headers=admin_headers,
        )
        assert response.status_code == 201, response.text
        return response.json()["data"]

    return _make


@pytest.fixture
def make_product(client, admin_headers, make_category):
    state = {}

    def _make(name="Phone", price=999.99, stock=10, category_id=None, **extra):
        if category_id is None:
            if "category" not in state:
                state["category"] = make_category("Boxing Gloves")
            category_id = state["category"]["id"]
        payload = {
            "name": name,
            "price": price,
            "stock": stock,
            "cover": f"https://cdn.example.com/{name.lower()}.jpg",
            "category_id": category_id,
            **extra,
        }
        response = client.post("/api/products", json=payload, headers=admin_headers)
        assert response.status_code == 201, response.text
        return response.json()["data"]

    return _make


@pytest.fixture
def make_drop(client, admin_headers):
    def _make(name="Samurai Spirit", status="ACTIVE", release_date="2026-09-01T00:00:00Z", **extra):
        payload = {
            "name": name,
            "description": "Autumn collection",
            "status": status,
            "release_date": release_date,
            "banner_image": "https://cdn.example.com/banner.jpg",
            "primary_color": "#1a1a1a",
            "secondary_color": "#b22222",
            "accent_color": "#d4af37",
            **extra,
        }
        response = client.post("/api/drops", json=payload, headers=admin_headers)
        assert response.status_code == 201, response.text
        return response.json()["data"]

    return _make


class FakeRedis:
    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value, ex=None):
        self.store[key] = value

    def delete(self, key):
        self.store.pop(key, None)


@pytest.fixture
def fake_cache(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(cache, "get_cache", lambda: fake)
    return fake
