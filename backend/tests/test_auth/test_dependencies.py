"""Tests for auth dependencies: bearer token to actor, and role gates."""

import uuid
from datetime import timedelta

import pytest
from httpx import AsyncClient
from jose import jwt

from factories import auth_headers_for
from staydesk.auth.jwt import create_access_token
from staydesk.config import settings
from staydesk.domain.enums import Role

pytestmark = pytest.mark.asyncio

RESERVATIONS = "/api/v1/reservations"


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _signed(claims: dict) -> str:
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


class TestGetCurrentActor:
    """Exercise get_current_actor through the client's reservation list."""

    async def test_valid_client_token(self, client: AsyncClient, client_headers):
        response = await client.get(RESERVATIONS, headers=client_headers)
        assert response.status_code == 200
        assert response.json() == {"items": [], "total": 0}

    async def test_missing_token(self, client: AsyncClient):
        response = await client.get(RESERVATIONS)
        assert response.status_code in (401, 403)

    async def test_expired_token_rejected(self, client: AsyncClient, amina):
        token = create_access_token(str(amina.id), Role.CLIENT, expires_delta=timedelta(seconds=-1))
        response = await client.get(RESERVATIONS, headers=_bearer(token))
        assert response.status_code == 401

    async def test_invalid_token_format(self, client: AsyncClient):
        response = await client.get(RESERVATIONS, headers=_bearer("not.a.valid.jwt"))
        assert response.status_code == 401

    async def test_wrong_token_type_rejected(self, client: AsyncClient, amina):
        token = _signed({"sub": str(amina.id), "role": "CLIENT", "type": "refresh"})
        response = await client.get(RESERVATIONS, headers=_bearer(token))
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid token type"

    @pytest.mark.parametrize(
        "claims",
        [
            {"role": "CLIENT"},
            {"sub": "not-a-uuid", "role": "CLIENT"},
            {"sub": str(uuid.uuid4())},
            {"sub": str(uuid.uuid4()), "role": "MANAGER"},
        ],
    )
    async def test_malformed_claims_rejected(self, client: AsyncClient, claims):
        token = _signed({**claims, "type": "access"})
        response = await client.get(RESERVATIONS, headers=_bearer(token))
        assert response.status_code == 401

    async def test_system_role_never_accepted_from_token(self, client: AsyncClient):
        headers = auth_headers_for(uuid.uuid4(), Role.SYSTEM)
        response = await client.get(RESERVATIONS, headers=headers)
        assert response.status_code == 401


class TestRequireRoles:
    async def test_other_roles_forbidden(self, client: AsyncClient, admin_headers, agent_headers):
        for headers in (admin_headers, agent_headers):
            response = await client.get(RESERVATIONS, headers=headers)
            assert response.status_code == 403
            assert "not allowed" in response.json()["detail"]

    async def test_board_open_to_staff_only(self, client: AsyncClient, rooms, admin_headers, agent_headers, client_headers):
        body = {"check_in": "2030-06-11", "check_out": "2030-06-13"}
        assert (await client.post("/api/v1/rooms/board", json=body, headers=agent_headers)).status_code == 200
        assert (await client.post("/api/v1/rooms/board", json=body, headers=admin_headers)).status_code == 200
        assert (await client.post("/api/v1/rooms/board", json=body, headers=client_headers)).status_code == 403
