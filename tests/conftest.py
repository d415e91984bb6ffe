import mongomock
import pytest
from fastapi.testclient import TestClient

from blob import LocalBlobStore
from main import create_app
from sample_data import SAMPLE_PRODUCTS
from store import Store

PASSWORD = "secret123"


@pytest.fixture
def db():
    return mongomock.MongoClient()["storefront_test"]


@pytest.fixture
def store(db):
    return Store(db)


@pytest.fixture
def blobs(tmp_path):
    return LocalBlobStore(root=str(tmp_path / "media"), base_url="/media")


@pytest.fixture
def client(db, blobs):
    app = create_app(db=db, blobs=blobs)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def products(store):
    store.seed_products(SAMPLE_PRODUCTS)
    return {p["name"]: p for p in store.list_products()}


@pytest.fixture
def oil(products):
    return products["RevMax Pro-S 10W-40 Full Synthetic"]


@pytest.fixture
def plugs(products):
    return products["SparkForce Iridium Spark Plug Pack"]


def register_and_login(client, db, email, admin=False):
    resp = client.post("/auth/register", json={"email": email, "password": PASSWORD, "name": "Andra Putra"})
    assert resp.status_code == 201
    if admin:
        db["profile"].update_one({"user_id": resp.json()["id"]}, {"$set": {"role": "admin"}})
    resp = client.post("/auth/token", data={"username": email, "password": PASSWORD})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


@pytest.fixture
def customer_headers(client, db):
    return register_and_login(client, db, "andra@example.com")


@pytest.fixture
def admin_headers(client, db):
    return register_and_login(client, db, "admin@example.com", admin=True)


def checkout_payload(items, logistic="JNE|REG", **overrides):
    payload = {
        "customer_name": "Andra Putra",
        "customer_email": "andra@example.com",
        "customer_phone": "081234567890",
        "address": {
            "line1": "Jl. Merdeka 10",
            "city": "Bandung",
            "province": "Jawa Barat",
            "postal_code": "40111",
        },
        "logistic": logistic,
        "items": items,
    }
    payload.update(overrides)
    return payload
