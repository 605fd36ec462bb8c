"""Tests for local authentication: password hashing, JWTs and the auth endpoints."""

import pytest
from fastapi import status
from httpx import AsyncClient

from beacon.config import Settings
from beacon.core.security import SecurityUtils
from beacon.exceptions import AuthenticationError


# ============================================================================
# UNIT TESTS - Security Utils
# ============================================================================


class TestSecurityUtils:
    """Test security utilities (password hashing, JWT tokens)."""

    @pytest.fixture
    def security_utils(self):
        """Create security utils instance for testing."""
        settings = Settings(
            jwt_secret_key="test-secret-key-do-not-use-in-production",
            jwt_algorithm="HS256",
            jwt_access_token_expire_minutes=30,
            jwt_refresh_token_expire_days=7,
        )
        return SecurityUtils(settings)

    def test_password_hashing(self, security_utils):
        """Test password hashing and verification."""
        password = "SecurePass123"
        hashed = security_utils.hash_password(password)

        # Hash should be different from original
        assert hashed != password

        assert security_utils.verify_password(password, hashed)
        assert not security_utils.verify_password("WrongPassword", hashed)

    def test_user_without_password_never_matches(self, security_utils):
        """Identity-provider users have no local password."""
        assert not security_utils.verify_password("SecurePass123", None)
        assert not security_utils.verify_password("SecurePass123", "")

    def test_access_token_creation(self, security_utils):
        """Test JWT access token creation."""
        user_id = "123e4567-e89b-12d3-a456-426614174000"

        token = security_utils.create_access_token(user_id)

        assert isinstance(token, str)
        assert len(token) > 0

        payload = security_utils.verify_token(token, expected_type="access")
        assert payload["sub"] == user_id
        assert payload["type"] == "access"

    def test_token_pair_creation(self, security_utils):
        """Test creating both access and refresh tokens."""
        user_id = "123e4567-e89b-12d3-a456-426614174000"

        tokens = security_utils.create_token_pair(user_id)

        assert "access_token" in tokens
        assert "refresh_token" in tokens

        refresh_payload = security_utils.verify_token(
            tokens["refresh_token"], expected_type="refresh"
        )
        assert refresh_payload["sub"] == user_id

    def test_invalid_token_verification(self, security_utils):
        """Test that invalid tokens are rejected."""
        with pytest.raises(AuthenticationError):
            security_utils.verify_token("invalid-token", expected_type="access")

    def test_wrong_token_type(self, security_utils):
        """Test that using wrong token type is rejected."""
        access_token = security_utils.create_access_token("some-user")

        with pytest.raises(AuthenticationError):
            security_utils.verify_token(access_token, expected_type="refresh")


# ============================================================================
# INTEGRATION TESTS - API Endpoints
# ============================================================================


async def register(client: AsyncClient, email: str, password: str = "TestPass123", **extra):
    return await client.post(
        "/api/v1/auth/register",
        json={"email": email, "password": password, "full_name": "Test User", **extra},
    )


@pytest.mark.asyncio
class TestAuthenticationEndpoints:
    """Test authentication API endpoints."""

    async def test_register_user(self, client: AsyncClient, publisher):
        """Test user registration."""
        response = await register(client, "test@example.com", full_name="Ada Lovelace")

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()

        assert data["email"] == "test@example.com"
        assert data["full_name"] == "Ada Lovelace"
        assert data["role"] == "user"
        assert data["is_active"] is True

        assert "access_token" in data["tokens"]
        assert "refresh_token" in data["tokens"]
        assert data["tokens"]["token_type"] == "bearer"

        event, payload = publisher.published[-1]
        assert event == "user:created"
        assert payload["source"] == "registration"
        assert payload["email"] == "test@example.com"

    async def test_register_duplicate_email(self, client: AsyncClient):
        """Test that registering the same email twice fails."""
        response1 = await register(client, "dup@example.com")
        assert response1.status_code == status.HTTP_201_CREATED

        response2 = await register(client, "dup@example.com")
        assert response2.status_code == status.HTTP_409_CONFLICT

    async def test_register_weak_password(self, client: AsyncClient):
        """Test that weak passwords are rejected."""
        response = await register(client, "weak@example.com", password="weak")

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    async def test_register_password_without_digit(self, client: AsyncClient):
        response = await register(client, "nodigit@example.com", password="NoDigitsHere")

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    async def test_login_success(self, client: AsyncClient):
        """Test successful login."""
        await register(client, "login@example.com")

        response = await client.post(
            "/api/v1/auth/login",
            json={"email": "login@example.com", "password": "TestPass123"},
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert "access_token" in data
        assert "refresh_token" in data

    async def test_login_wrong_password(self, client: AsyncClient):
        """Test login with wrong password."""
        await register(client, "wrong@example.com", password="CorrectPass123")

        response = await client.post(
            "/api/v1/auth/login",
            json={"email": "wrong@example.com", "password": "WrongPass123"},
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["detail"] == "Incorrect email or password"

    async def test_login_inactive_user(self, client: AsyncClient, make_user):
        await make_user(email="inactive@example.com", is_active=False)

        response = await client.post(
            "/api/v1/auth/login",
            json={"email": "inactive@example.com", "password": "SecurePass123"},
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    async def test_get_me(self, client: AsyncClient):
        """Test getting current user profile."""
        register_response = await register(client, "me@example.com", full_name="Me User")
        access_token = register_response.json()["tokens"]["access_token"]

        response = await client.get(
            "/api/v1/auth/me",
            headers={"Authorization": f"Bearer {access_token}"},
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["email"] == "me@example.com"
        assert data["full_name"] == "Me User"

    async def test_get_me_unauthorized(self, client: AsyncClient):
        """Test that accessing /me without token fails."""
        response = await client.get("/api/v1/auth/me")
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    async def test_get_me_with_refresh_token(self, client: AsyncClient):
        """A refresh token cannot be used as an access token."""
        register_response = await register(client, "refresh-as-access@example.com")
        refresh_token = register_response.json()["tokens"]["refresh_token"]

        response = await client.get(
            "/api/v1/auth/me",
            headers={"Authorization": f"Bearer {refresh_token}"},
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    async def test_update_profile(self, client: AsyncClient):
        """Test updating user profile."""
        register_response = await register(client, "old@example.com")
        access_token = register_response.json()["tokens"]["access_token"]

        response = await client.patch(
            "/api/v1/auth/me",
            headers={"Authorization": f"Bearer {access_token}"},
            json={"full_name": "New Name", "username": "newname"},
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["full_name"] == "New Name"
        assert data["username"] == "newname"

    async def test_update_password_then_login(self, client: AsyncClient):
        register_response = await register(client, "rotate@example.com")
        access_token = register_response.json()["tokens"]["access_token"]

        await client.patch(
            "/api/v1/auth/me",
            headers={"Authorization": f"Bearer {access_token}"},
            json={"password": "RotatedPass456"},
        )

        old = await client.post(
            "/api/v1/auth/login",
            json={"email": "rotate@example.com", "password": "TestPass123"},
        )
        new = await client.post(
            "/api/v1/auth/login",
            json={"email": "rotate@example.com", "password": "RotatedPass456"},
        )

        assert old.status_code == status.HTTP_401_UNAUTHORIZED
        assert new.status_code == status.HTTP_200_OK

    async def test_refresh_token(self, client: AsyncClient):
        """Test refreshing access token."""
        register_response = await register(client, "refresh@example.com")
        refresh_token = register_response.json()["tokens"]["refresh_token"]

        response = await client.post(
            "/api/v1/auth/refresh",
            json={"refresh_token": refresh_token},
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert "access_token" in data
        assert "refresh_token" in data

    async def test_refresh_with_access_token(self, client: AsyncClient):
        register_response = await register(client, "refresh-wrong@example.com")
        access_token = register_response.json()["tokens"]["access_token"]

        response = await client.post(
            "/api/v1/auth/refresh",
            json={"refresh_token": access_token},
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
