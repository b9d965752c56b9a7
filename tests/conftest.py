import os

os.environ.setdefault("DB_URL", "sqlite://:memory:")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("SEED_ADMIN", "true")
os.environ.setdefault("ADMIN_EMAIL", "admin@rms.com")
os.environ.setdefault("ADMIN_PASSWORD", "Admin@123")
os.environ.setdefault("BALANCE_RESYNC_SECONDS", "0")

from fastapi.testclient import TestClient  # noqa: E402
import pytest  # noqa: E402

from main import app  # noqa: E402

ADMIN = {"email": "admin@rms.com", "password": "Admin@123"}


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def client() -> TestClient:
    # fresh in-memory database per test: the lifespan re-initialises Tortoise
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def admin_headers(client: TestClient) -> dict:
    res = client.post("/auth/login", json=ADMIN)
    assert res.status_code == 200, res.text
    return bearer(res.json()["tokens"]["accessToken"])


@pytest.fixture()
def make_shopkeeper(client: TestClient, admin_headers: dict):
    """Create a shopkeeper through the admin API and return (record, auth headers)."""
    def _make(email: str = "shop@example.com", password: str = "secret123", **extra):
        body = {"email": email, "password": password, "name": "Corner Shop", "businessName": "Corner Shop"}
        body.update(extra)
        res = client.post("/admin/shopkeepers", json=body, headers=admin_headers)
        assert res.status_code == 201, res.text
        login = client.post("/auth/login", json={"email": email, "password": password})
        assert login.status_code == 200, login.text
        return res.json(), bearer(login.json()["tokens"]["accessToken"])
    return _make


@pytest.fixture()
def shop(make_shopkeeper) -> dict:
    _, headers = make_shopkeeper()
    return headers
