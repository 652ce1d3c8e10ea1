import uuid
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import actor_for, auth_headers
from moderation_core.api.v1.endpoints.auth import get_current_actor
from moderation_core.core.exceptions import InsufficientPermissionsError
from moderation_core.core.security import create_access_token
from moderation_core.models.user import User
from moderation_core.schemas.moderation import RestrictionType
from moderation_core.services import action_service


@pytest.mark.asyncio
async def test_register_success(client: AsyncClient):
    user_data = {
        "email": "newuser@example.com",
        "password": "securepassword123",
        "display_name": "New User",
    }

    response = await client.post("/api/v1/auth/register", json=user_data)

    assert response.status_code == 201
    data = response.json()
    assert data["email"] == user_data["email"]
    assert data["display_name"] == user_data["display_name"]
    assert data["role"] == "user"
    assert data["status"] == "active"
    assert "id" in data
    assert "created_at" in data
    assert "password" not in data
    assert "password_hash" not in data


@pytest.mark.asyncio
async def test_register_duplicate_email(client: AsyncClient, registered_user: dict):
    user_data = {
        "email": registered_user["email"],
        "password": "anotherpassword123",
    }

    response = await client.post("/api/v1/auth/register", json=user_data)

    assert response.status_code == 422
    data = response.json()
    assert data["detail"] == "Email already registered"
    assert data["code"] == "MODERATION_VALIDATION_ERROR"
    assert data["field"] == "email"


@pytest.mark.asyncio
async def test_register_invalid_email(client: AsyncClient):
    user_data = {
        "email": "invalid-email",
        "password": "securepassword123",
    }

    response = await client.post("/api/v1/auth/register", json=user_data)

    assert response.status_code == 422
    assert response.json()["code"] == "MODERATION_VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_register_short_password(client: AsyncClient):
    user_data = {
        "email": "test@example.com",
        "password": "short",
    }

    response = await client.post("/api/v1/auth/register", json=user_data)

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_login_success(client: AsyncClient, registered_user: dict):
    response = await client.post(
        "/api/v1/auth/login",
        data={
            "username": registered_user["email"],
            "password": registered_user["password"],
        },
    )

    assert response.status_code == 200
    data = response.json()
    assert "access_token" in data
    assert data["token_type"] == "bearer"


@pytest.mark.asyncio
async def test_login_wrong_password(client: AsyncClient, registered_user: dict):
    response = await client.post(
        "/api/v1/auth/login",
        data={
            "username": registered_user["email"],
            "password": "wrongpassword",
        },
    )

    assert response.status_code == 401
    data = response.json()
    assert data["detail"] == "Incorrect email or password"
    assert data["code"] == "MODERATION_UNAUTHORIZED"


@pytest.mark.asyncio
async def test_login_nonexistent_user(client: AsyncClient):
    response = await client.post(
        "/api/v1/auth/login",
        data={
            "username": "nonexistent@example.com",
            "password": "somepassword123",
        },
    )

    assert response.status_code == 401
    assert response.json()["detail"] == "Incorrect email or password"


@pytest.mark.asyncio
async def test_get_me_with_token(client: AsyncClient, registered_user: dict, auth_token: str):
    response = await client.get(
        "/api/v1/auth/me",
        headers={"Authorization": f"Bearer {auth_token}"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["email"] == registered_user["email"]
    assert data["role"] == "user"
    assert "id" in data
    assert "password" not in data


@pytest.mark.asyncio
async def test_get_me_without_token(client: AsyncClient):
    response = await client.get("/api/v1/auth/me")

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_get_me_invalid_token(client: AsyncClient):
    response = await client.get(
        "/api/v1/auth/me",
        headers={"Authorization": "Bearer invalid-token"},
    )

    assert response.status_code == 401
    assert "X-Request-ID" in response.headers


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


# ============== Moderation state of the caller ==============


async def suspend(
    db: AsyncSession, moderator: User, user: User, now: datetime | None = None
) -> None:
    await action_service.apply_restriction(
        db,
        actor_for(moderator),
        user_id=user.id,
        restriction_type=RestrictionType.suspended,
        reason="Harassment",
        duration_days=1,
        send_notification=False,
        now=now,
    )


@pytest.mark.asyncio
async def test_token_for_unknown_user_is_rejected(client: AsyncClient):
    token = create_access_token(str(uuid.uuid4()))

    response = await client.get(
        "/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"}
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_current_actor_rejects_suspended_account(
    db_session: AsyncSession, regular_user: User, moderator: User
):
    actor = actor_for(regular_user)
    await suspend(db_session, moderator, regular_user)

    with pytest.raises(InsufficientPermissionsError):
        await get_current_actor(actor, db_session)


@pytest.mark.asyncio
async def test_suspended_user_can_still_read_profile(
    client: AsyncClient, db_session: AsyncSession, regular_user: User, moderator: User
):
    await suspend(db_session, moderator, regular_user)
    headers = auth_headers(regular_user)

    me = await client.get("/api/v1/auth/me", headers=headers)
    report = await client.post(
        "/api/v1/moderation/reports",
        json={"report_type": "post", "target_id": str(uuid.uuid4()), "reason": "spam"},
        headers=headers,
    )

    assert me.status_code == 200
    assert me.json()["status"] == "suspended"
    assert report.status_code == 403
    assert report.json()["detail"] == "Account is suspended"


@pytest.mark.asyncio
async def test_lapsed_suspension_no_longer_blocks(
    db_session: AsyncSession, regular_user: User, moderator: User
):
    actor = actor_for(regular_user)
    await suspend(
        db_session, moderator, regular_user, now=datetime.now(timezone.utc) - timedelta(days=3)
    )

    assert await get_current_actor(actor, db_session) == actor
