"""Tests for admin user management and company endpoints."""

import pytest
from fastapi import status
from httpx import AsyncClient

from beacon.models.users import UserRole


# ============================================================================
# INTEGRATION TESTS - Admin users
# ============================================================================


@pytest.mark.asyncio
class TestAdminUsers:
    """Test the admin user management screens' API."""

    async def test_list_users_requires_admin(self, client: AsyncClient, make_user, auth_headers):
        user = await make_user()

        response = await client.get("/users", headers=auth_headers(user))

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["detail"] == "The user doesn't have enough privileges"

    async def test_list_users(self, client: AsyncClient, make_user, auth_headers):
        admin = await make_user(role=UserRole.ADMIN)
        await make_user(email="listed@example.com")

        response = await client.get("/users", headers=auth_headers(admin))

        assert response.status_code == status.HTTP_200_OK
        emails = [user["email"] for user in response.json()]
        assert "listed@example.com" in emails

    async def test_create_user(self, client: AsyncClient, make_user, auth_headers, publisher):
        """Created users are returned in camelCase and announced."""
        admin = await make_user(role=UserRole.ADMIN)

        response = await client.post(
            "/users",
            headers=auth_headers(admin),
            json={"fullName": "Grace Hopper", "email": "Grace@Example.com", "role": "user"},
        )

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["fullName"] == "Grace Hopper"
        assert data["email"] == "grace@example.com"
        assert data["isActive"] is True

        event, payload = publisher.published[-1]
        assert event == "user:created"
        assert payload["source"] == "admin_panel"

    async def test_create_user_short_name(self, client: AsyncClient, make_user, auth_headers):
        admin = await make_user(role=UserRole.ADMIN)

        response = await client.post(
            "/users",
            headers=auth_headers(admin),
            json={"fullName": "Al", "email": "al@example.com"},
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    async def test_create_user_duplicate_email(self, client: AsyncClient, make_user, auth_headers):
        admin = await make_user(role=UserRole.ADMIN)
        await make_user(email="taken@example.com")

        response = await client.post(
            "/users",
            headers=auth_headers(admin),
            json={"fullName": "Someone Else", "email": "taken@example.com"},
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert "email" in response.json()["errors"]

    async def test_user_can_update_self_but_not_role(
        self, client: AsyncClient, make_user, auth_headers
    ):
        user = await make_user(full_name="Old Name")

        response = await client.put(
            f"/users/{user.id}",
            headers=auth_headers(user),
            json={"fullName": "New Name", "role": "admin"},
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["fullName"] == "New Name"
        assert data["role"] == "user"

    async def test_user_cannot_update_others(self, client: AsyncClient, make_user, auth_headers):
        user = await make_user()
        other = await make_user()

        response = await client.put(
            f"/users/{other.id}",
            headers=auth_headers(user),
            json={"fullName": "Hijacked"},
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    async def test_delete_user(self, client: AsyncClient, make_user, auth_headers, publisher):
        admin = await make_user(role=UserRole.ADMIN)
        victim = await make_user()

        response = await client.delete(f"/users/{victim.id}", headers=auth_headers(admin))

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert publisher.published[-1] == ("user:deleted", {"userId": str(victim.id)})

        again = await client.delete(f"/users/{victim.id}", headers=auth_headers(admin))
        assert again.status_code == status.HTTP_404_NOT_FOUND

    async def test_admin_cannot_delete_self(self, client: AsyncClient, make_user, auth_headers):
        admin = await make_user(role=UserRole.ADMIN)

        response = await client.delete(f"/users/{admin.id}", headers=auth_headers(admin))

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["detail"] == "You cannot delete your own account"


# ============================================================================
# INTEGRATION TESTS - Companies
# ============================================================================


@pytest.mark.asyncio
class TestCompanies:
    """Test company CRUD and membership rules."""

    async def test_create_company_attaches_creator(
        self, client: AsyncClient, make_user, auth_headers, publisher
    ):
        user = await make_user()

        response = await client.post(
            "/companies",
            headers=auth_headers(user),
            json={"name": "  Acme Corp  ", "website": "https://acme.example.com"},
        )

        assert response.status_code == status.HTTP_201_CREATED
        company = response.json()
        assert company["name"] == "Acme Corp"
        assert publisher.names()[-1] == "company:created"

        detail = await client.get(f"/companies/{company['id']}", headers=auth_headers(user))
        assert detail.status_code == status.HTTP_200_OK
        members = detail.json()["members"]
        assert members == [{"userId": str(user.id), "role": "admin", "isPrimary": True}]

    async def test_duplicate_company_name(self, client: AsyncClient, make_user, auth_headers):
        user = await make_user()
        await client.post("/companies", headers=auth_headers(user), json={"name": "Initech"})

        response = await client.post(
            "/companies",
            headers=auth_headers(user),
            json={"name": "Initech"},
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert "name" in response.json()["errors"]

    async def test_non_member_cannot_view(
        self, client: AsyncClient, make_user, make_company, auth_headers
    ):
        owner = await make_user()
        outsider = await make_user()
        company = await make_company(members=[(owner, "admin", True)])

        response = await client.get(f"/companies/{company.id}", headers=auth_headers(outsider))

        assert response.status_code == status.HTTP_403_FORBIDDEN

    async def test_plain_member_cannot_update(
        self, client: AsyncClient, make_user, make_company, auth_headers
    ):
        member = await make_user()
        company = await make_company(members=[(member, "member", True)])

        response = await client.put(
            f"/companies/{company.id}",
            headers=auth_headers(member),
            json={"name": "Renamed"},
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    async def test_company_admin_can_update(
        self, client: AsyncClient, make_user, make_company, auth_headers
    ):
        owner = await make_user()
        company = await make_company(
            name="Old Name Inc",
            members=[(owner, "admin", True)],
            city="Lisbon",
        )

        response = await client.put(
            f"/companies/{company.id}",
            headers=auth_headers(owner),
            json={"name": "New Name Inc"},
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["name"] == "New Name Inc"
        # Fields missing from the payload are left alone
        assert data["city"] == "Lisbon"

    async def test_missing_company(self, client: AsyncClient, make_user, auth_headers):
        admin = await make_user(role=UserRole.ADMIN)

        response = await client.get(
            "/companies/00000000-0000-0000-0000-000000000000",
            headers=auth_headers(admin),
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json() == {"error": "Company not found"}

    async def test_delete_requires_admin(
        self, client: AsyncClient, make_user, make_company, auth_headers
    ):
        owner = await make_user()
        admin = await make_user(role=UserRole.ADMIN)
        company = await make_company(members=[(owner, "admin", True)])

        forbidden = await client.delete(f"/companies/{company.id}", headers=auth_headers(owner))
        deleted = await client.delete(f"/companies/{company.id}", headers=auth_headers(admin))

        assert forbidden.status_code == status.HTTP_403_FORBIDDEN
        assert deleted.status_code == status.HTTP_204_NO_CONTENT
