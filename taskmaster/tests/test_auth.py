"""Tests for registration, login, the current-user endpoint and the auth gate."""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlmodel import select

from taskmaster.auth import ensure_admin
from taskmaster.database import Store
from taskmaster.errors import Unauthenticated
from taskmaster.models import User, UserRole
from taskmaster.security import (
    JWT_ALGORITHM,
    create_access_token,
    decode_access_token,
    extract_bearer_token,
    hash_password,
    verify_password,
)

REGISTER = "/api/v1/auth/register"
LOGIN = "/api/v1/auth/login"
ME = "/api/v1/auth/me"


class TestRegister:
    def test_register_returns_user_and_token(self, client: TestClient):
        response = client.post(
            REGISTER,
            json={"name": "Carol", "email": "Carol@Example.com", "password": "secret123"},
        )
        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "User registered successfully"
        user = body["data"]["user"]
        assert user["email"] == "carol@example.com"
        assert user["role"] == "user"
        assert user["isActive"] is True
        assert "passwordHash" not in user and "password" not in user
        assert body["data"]["token"]

    def test_role_cannot_be_self_assigned(self, client: TestClient):
        response = client.post(
            REGISTER,
            json={"name": "Eve", "email": "eve@example.com", "password": "secret123", "role": "admin"},
        )
        assert response.status_code == 201
        assert response.json()["data"]["user"]["role"] == "user"

    def test_duplicate_email(self, client: TestClient, alice):
        response = client.post(
            REGISTER,
            json={"name": "Alice Again", "email": "ALICE@example.com", "password": "secret123"},
        )
        assert response.status_code == 400
        body = response.json()
        assert body["message"] == "User already exists"
        assert body["errors"][0]["field"] == "email"

    @pytest.mark.parametrize(
        "payload,field",
        [
            ({"name": "A", "email": "a@example.com", "password": "secret123"}, "name"),
            ({"name": "Abe", "email": "not-an-email", "password": "secret123"}, "email"),
            ({"name": "Abe", "email": "a@example.com", "password": "123"}, "password"),
            ({"email": "a@example.com", "password": "secret123"}, "name"),
        ],
    )
    def test_validation(self, client: TestClient, payload, field):
        response = client.post(REGISTER, json=payload)
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert [e["field"] for e in body["errors"]] == [field]

    def test_malformed_json(self, client: TestClient):
        response = client.post(
            REGISTER, content=b"{not json", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["errors"][0]["field"] == "body"


class TestLogin:
    def test_login_success(self, client: TestClient, alice):
        response = client.post(LOGIN, json={"email": "alice@example.com", "password": "secret123"})
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Login successful"
        assert body["data"]["user"]["id"] == alice[1]["id"]

        me = client.get(ME, headers={"Authorization": f"Bearer {body['data']['token']}"})
        assert me.status_code == 200

    def test_wrong_password_and_unknown_email_look_the_same(self, client: TestClient, alice):
        wrong = client.post(LOGIN, json={"email": "alice@example.com", "password": "nope-nope"})
        unknown = client.post(LOGIN, json={"email": "ghost@example.com", "password": "secret123"})
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json() == {"success": False, "message": "Invalid credentials"}

    def test_deactivated_account(self, client: TestClient, store: Store, alice):
        with store.session() as session:
            user = session.exec(select(User).where(User.email == "alice@example.com")).one()
            user.is_active = False
            session.add(user)
            session.commit()

        response = client.post(LOGIN, json={"email": "alice@example.com", "password": "secret123"})
        assert response.status_code == 401
        assert response.json()["message"] == "User account is deactivated"

        response = client.get(ME, headers=alice[0])
        assert response.status_code == 401


class TestMe:
    def test_me(self, client: TestClient, alice):
        response = client.get(ME, headers=alice[0])
        assert response.status_code == 200
        assert response.json()["data"]["user"]["email"] == "alice@example.com"

    def test_missing_token(self, client: TestClient):
        response = client.get(ME)
        assert response.status_code == 401
        assert response.json()["message"] == "Not authorized to access this route"

    def test_wrong_scheme(self, client: TestClient, alice):
        token = alice[0]["Authorization"].split(" ", 1)[1]
        response = client.get(ME, headers={"Authorization": f"Basic {token}"})
        assert response.status_code == 401

    def test_garbage_token(self, client: TestClient):
        response = client.get(ME, headers={"Authorization": "Bearer not.a.token"})
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid or expired token"

    def test_token_signed_with_other_secret(self, client: TestClient, alice):
        token = jwt.encode(
            {"sub": alice[1]["id"], "role": "user", "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
            "some-other-secret",
            algorithm=JWT_ALGORITHM,
        )
        response = client.get(ME, headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_token_for_unknown_user(self, client: TestClient):
        user = User(id=uuid.uuid4(), name="Ghost", email="ghost@example.com", password_hash="x")
        token = create_access_token(user, "test-secret", 60)
        response = client.get(ME, headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["message"] == "User no longer exists"

    def test_role_comes_from_the_store_not_the_token(self, client: TestClient, alice):
        forged = jwt.encode(
            {"sub": alice[1]["id"], "role": "admin", "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
            "test-secret",
            algorithm=JWT_ALGORITHM,
        )
        response = client.get(ME, headers={"Authorization": f"Bearer {forged}"})
        assert response.json()["data"]["user"]["role"] == "user"


class TestTokens:
    def test_round_trip(self):
        user = User(id=uuid.uuid4(), name="T", email="t@example.com", password_hash="x", role=UserRole.admin)
        claims = decode_access_token(create_access_token(user, "s3cret", 5), "s3cret")
        assert claims.user_id == user.id
        assert claims.role == UserRole.admin

    def test_expired(self):
        user = User(id=uuid.uuid4(), name="T", email="t@example.com", password_hash="x")
        token = create_access_token(user, "s3cret", -1)
        with pytest.raises(Unauthenticated, match="expired"):
            decode_access_token(token, "s3cret")

    def test_wrong_type(self):
        token = jwt.encode(
            {"sub": str(uuid.uuid4()), "typ": "refresh", "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
            "s3cret",
            algorithm=JWT_ALGORITHM,
        )
        with pytest.raises(Unauthenticated):
            decode_access_token(token, "s3cret")

    @pytest.mark.parametrize(
        "header,expected",
        [
            (None, None),
            ("", None),
            ("Bearer abc", "abc"),
            ("bearer abc", "abc"),
            ("Bearer ", None),
            ("Token abc", None),
            ("abc", None),
        ],
    )
    def test_extract_bearer_token(self, header, expected):
        assert extract_bearer_token(header) == expected

    def test_password_hashing(self):
        hashed = hash_password("hunter22")
        assert hashed != "hunter22"
        assert verify_password("hunter22", hashed) is True
        assert verify_password("wrong", hashed) is False
        assert verify_password("hunter22", "not-a-hash") is False


class TestAdminSeed:
    def test_admin_is_seeded_at_startup(self, client: TestClient, admin):
        assert admin[1]["role"] == "admin"

    def test_seed_is_idempotent_and_promotes(self, settings, store: Store):
        with store.session() as session:
            session.add(User(name="Existing", email=settings.admin_email, password_hash="x"))
            session.commit()

        first = ensure_admin(store, settings)
        second = ensure_admin(store, settings)
        assert first.role == UserRole.admin
        assert second.id == first.id

        with store.session() as session:
            admins = session.exec(select(User).where(User.email == settings.admin_email)).all()
            assert len(admins) == 1

    def test_seed_disabled_without_credentials(self, settings, store: Store):
        settings = settings.model_copy(update={"admin_email": "", "admin_password": ""})
        assert ensure_admin(store, settings) is None
