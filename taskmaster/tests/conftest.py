"""Shared fixtures: a fresh app on an in-memory database for each test."""

import pytest
from fastapi.testclient import TestClient

from taskmaster.config import Settings
from taskmaster.database import Store
from taskmaster.main import create_app

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin-password"


@pytest.fixture(name="settings")
def settings_fixture():
    return Settings(
        _env_file=None,
        app_env="test",
        database_url="sqlite://",
        jwt_secret="test-secret",
        rate_limit_max=0,
        admin_email=ADMIN_EMAIL,
        admin_password=ADMIN_PASSWORD,
    )


@pytest.fixture(name="store")
def store_fixture(settings: Settings):
    store = Store(settings.database_url)
    store.create_all()
    yield store
    store.dispose()


@pytest.fixture(name="client")
def client_fixture(settings: Settings, store: Store):
    """Create a test client; entering it runs the app lifespan."""
    app = create_app(settings, store)
    with TestClient(app) as client:
        yield client


@pytest.fixture(name="register")
def register_fixture(client: TestClient):
    """Register a user and return their auth headers and user payload."""
    def _register(name: str = "Alice", email: str = "alice@example.com", password: str = "secret123"):
        response = client.post(
            "/api/v1/auth/register",
            json={"name": name, "email": email, "password": password},
        )
        assert response.status_code == 201, response.text
        data = response.json()["data"]
        return {"Authorization": f"Bearer {data['token']}"}, data["user"]

    return _register


@pytest.fixture(name="alice")
def alice_fixture(register):
    return register("Alice", "alice@example.com")


@pytest.fixture(name="bob")
def bob_fixture(register):
    return register("Bob", "bob@example.com")


@pytest.fixture(name="admin")
def admin_fixture(client: TestClient):
    """Log in as the admin seeded at startup."""
    response = client.post(
        "/api/v1/auth/login",
        json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD},
    )
    assert response.status_code == 200, response.text
    data = response.json()["data"]
    return {"Authorization": f"Bearer {data['token']}"}, data["user"]
