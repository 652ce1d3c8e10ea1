"""Tests for the restriction store and restriction queries."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import actor_for, auth_headers, create_user
from moderation_core.core.exceptions import InsufficientPermissionsError, NotFoundError, ValidationError
from moderation_core.models.moderation_action import ModerationAction
from moderation_core.models.notification import NotificationEvent
from moderation_core.models.user import User
from moderation_core.models.user_restriction import UserRestriction
from moderation_core.schemas.moderation import RestrictionType, UserAction
from moderation_core.schemas.user import UserRole
from moderation_core.services import action_service, restriction_service, reversal_service


async def restrict(
    db: AsyncSession,
    moderator: User,
    user: User,
    restriction_type: RestrictionType = RestrictionType.posting_disabled,
    duration_days: int | None = 3,
    now: datetime | None = None,
) -> UserRestriction:
    return await action_service.apply_restriction(
        db,
        actor_for(moderator),
        user_id=user.id,
        restriction_type=restriction_type,
        reason="Posting spam",
        duration_days=duration_days,
        now=now,
    )


# ============== Applying ==============


@pytest.mark.asyncio
async def test_apply_restriction_writes_audit_row(
    db_session: AsyncSession, regular_user: User, moderator: User
):
    now = datetime.now(timezone.utc)
    restriction = await restrict(db_session, moderator, regular_user, now=now)

    assert restriction.is_active
    assert restriction.expires_at == now + timedelta(days=3)
    assert restriction.applied_by == moderator.id

    action = await db_session.get(ModerationAction, restriction.related_action_id)
    assert action.action_type == "restriction_applied"
    assert action.action_metadata["restriction_type"] == "posting_disabled"
    assert action.action_metadata["restriction_id"] == str(restriction.id)
    assert action.notification_sent is True


@pytest.mark.asyncio
async def test_reapplying_replaces_expiry(
    db_session: AsyncSession, regular_user: User, moderator: User
):
    now = datetime.now(timezone.utc)
    first = await restrict(db_session, moderator, regular_user, duration_days=3, now=now)
    first_action_id = first.related_action_id

    later = now + timedelta(hours=1)
    second = await restrict(db_session, moderator, regular_user, duration_days=10, now=later)

    assert second.id == first.id
    assert second.expires_at == later + timedelta(days=10)
    assert second.related_action_id != first_action_id

    active = (
        await db_session.execute(
            select(func.count(UserRestriction.id)).where(
                UserRestriction.user_id == regular_user.id,
                UserRestriction.is_active.is_(True),
            )
        )
    ).scalar()
    assert active == 1

    action = await db_session.get(ModerationAction, second.related_action_id)
    assert action.action_metadata["restriction_updated"] is True
    assert action.action_metadata["superseded_action_id"] == str(first_action_id)
    assert action.action_metadata["previous_expires_at"] == (now + timedelta(days=3)).isoformat()


@pytest.mark.asyncio
async def test_lapsed_restriction_is_replaced_by_new_row(
    db_session: AsyncSession, regular_user: User, moderator: User
):
    now = datetime.now(timezone.utc)
    first = await restrict(db_session, moderator, regular_user, duration_days=1, now=now)
    first_id, first_action_id = first.id, first.related_action_id

    second = await restrict(
        db_session, moderator, regular_user, duration_days=1, now=now + timedelta(days=2)
    )

    assert second.id != first_id
    old = await db_session.get(UserRestriction, first_id)
    assert old.is_active is False

    event = (
        await db_session.execute(
            select(NotificationEvent).where(NotificationEvent.kind == "restriction_expired")
        )
    ).scalar_one()
    assert event.recipient_id == regular_user.id
    assert event.related_action_id == first_action_id


@pytest.mark.asyncio
async def test_different_types_coexist(
    db_session: AsyncSession, regular_user: User, moderator: User
):
    await restrict(db_session, moderator, regular_user, RestrictionType.posting_disabled)
    await restrict(db_session, moderator, regular_user, RestrictionType.upload_disabled)

    restrictions = await restriction_service.check_user_restrictions(db_session, regular_user.id)

    assert {r.restriction_type for r in restrictions} == {
        RestrictionType.posting_disabled,
        RestrictionType.upload_disabled,
    }


@pytest.mark.asyncio
async def test_permanent_suspension_needs_admin(
    db_session: AsyncSession, regular_user: User, moderator: User, admin: User
):
    user_id = regular_user.id
    admin_actor = actor_for(admin)

    with pytest.raises(InsufficientPermissionsError):
        await restrict(db_session, moderator, regular_user, RestrictionType.suspended, None)

    restriction = await action_service.apply_restriction(
        db_session,
        admin_actor,
        user_id=user_id,
        restriction_type=RestrictionType.suspended,
        reason="Fraud",
    )
    assert restriction.expires_at is None

    action = await db_session.get(ModerationAction, restriction.related_action_id)
    assert action.action_type == "user_banned"

    status = await restriction_service.get_user_suspension_status(db_session, user_id)
    assert status.is_suspended
    assert status.is_permanent


@pytest.mark.asyncio
async def test_restricting_unknown_user(db_session: AsyncSession, moderator: User):
    with pytest.raises(NotFoundError):
        await action_service.apply_restriction(
            db_session,
            actor_for(moderator),
            user_id=uuid.uuid4(),
            restriction_type=RestrictionType.posting_disabled,
            reason="Spam",
            duration_days=1,
        )


@pytest.mark.asyncio
async def test_moderator_cannot_shorten_an_admin_ban(
    db_session: AsyncSession, regular_user: User, moderator: User, admin: User
):
    user_id = regular_user.id
    admin_actor, moderator_actor = actor_for(admin), actor_for(moderator)
    ban = await action_service.apply_restriction(
        db_session,
        admin_actor,
        user_id=user_id,
        restriction_type=RestrictionType.suspended,
        reason="Fraud",
    )
    ban_id, ban_action_id = ban.id, ban.related_action_id

    with pytest.raises(InsufficientPermissionsError):
        await action_service.apply_restriction(
            db_session,
            moderator_actor,
            user_id=user_id,
            restriction_type=RestrictionType.suspended,
            reason="Spam",
            duration_days=1,
        )
    with pytest.raises(InsufficientPermissionsError):
        await reversal_service.reverse_action(db_session, moderator_actor, ban_action_id, "Appeal")

    stored = await db_session.get(UserRestriction, ban_id)
    await db_session.refresh(stored)
    assert stored.is_active is True
    assert stored.expires_at is None
    assert stored.related_action_id == ban_action_id

    later = datetime.now(timezone.utc) + timedelta(days=30)
    assert not await restriction_service.can_user_perform_action(
        db_session, user_id, UserAction.post, now=later
    )
    status = await restriction_service.get_user_suspension_status(db_session, user_id)
    assert status.is_permanent


@pytest.mark.asyncio
async def test_admin_can_turn_a_ban_into_a_suspension(
    db_session: AsyncSession, regular_user: User, admin: User
):
    now = datetime.now(timezone.utc)
    ban = await restrict(db_session, admin, regular_user, RestrictionType.suspended, None, now)

    suspension = await restrict(db_session, admin, regular_user, RestrictionType.suspended, 3, now)

    assert suspension.id == ban.id
    assert suspension.expires_at == now + timedelta(days=3)
    await db_session.refresh(regular_user)
    assert regular_user.status == "suspended"


@pytest.mark.asyncio
async def test_restricting_an_admin_needs_admin(
    db_session: AsyncSession, moderator: User, admin: User
):
    target = await create_user(db_session, "admin2@example.com", role=UserRole.admin)
    target_id = target.id
    admin_actor, moderator_actor = actor_for(admin), actor_for(moderator)

    with pytest.raises(InsufficientPermissionsError):
        await action_service.apply_restriction(
            db_session,
            moderator_actor,
            user_id=target_id,
            restriction_type=RestrictionType.upload_disabled,
            reason="Copyright",
            duration_days=2,
        )

    restriction = await action_service.apply_restriction(
        db_session,
        admin_actor,
        user_id=target_id,
        restriction_type=RestrictionType.upload_disabled,
        reason="Copyright",
        duration_days=2,
    )
    assert restriction.user_id == target_id
    assert restriction.applied_by == admin_actor.id


# ============== Lazy expiry ==============


@pytest.mark.asyncio
async def test_expired_restriction_reads_inactive_before_sweep(
    db_session: AsyncSession, regular_user: User, moderator: User
):
    now = datetime.now(timezone.utc)
    restriction = await restrict(db_session, moderator, regular_user, duration_days=1, now=now)
    later = now + timedelta(days=2)

    assert not await restriction_service.can_user_perform_action(
        db_session, regular_user.id, UserAction.post, now=now + timedelta(hours=1)
    )
    assert await restriction_service.can_user_perform_action(
        db_session, regular_user.id, UserAction.post, now=later
    )

    restrictions = await restriction_service.check_user_restrictions(
        db_session, regular_user.id, now=later
    )
    assert len(restrictions) == 1
    assert restrictions[0].is_active is False

    # Stored flag is only flipped by the expiration job
    await db_session.refresh(restriction)
    assert restriction.is_active is True


@pytest.mark.asyncio
async def test_suspension_blocks_every_action(
    db_session: AsyncSession, regular_user: User, moderator: User
):
    await restrict(db_session, moderator, regular_user, RestrictionType.suspended, 2)

    for action in UserAction:
        assert not await restriction_service.can_user_perform_action(
            db_session, regular_user.id, action
        )


@pytest.mark.asyncio
async def test_restriction_only_blocks_its_action(
    db_session: AsyncSession, regular_user: User, moderator: User
):
    await restrict(db_session, moderator, regular_user, RestrictionType.commenting_disabled)

    assert await restriction_service.can_user_perform_action(db_session, regular_user.id, "post")
    assert not await restriction_service.can_user_perform_action(
        db_session, regular_user.id, "comment"
    )
    assert await restriction_service.can_user_perform_action(db_session, regular_user.id, "upload")


@pytest.mark.asyncio
async def test_unknown_user_action_is_a_validation_error(
    db_session: AsyncSession, regular_user: User
):
    with pytest.raises(ValidationError) as exc_info:
        await restriction_service.can_user_perform_action(db_session, regular_user.id, "dance")

    assert exc_info.value.field == "action"


# ============== API ==============


@pytest.mark.asyncio
async def test_user_can_see_own_restrictions(
    client: AsyncClient, db_session: AsyncSession, regular_user: User, moderator: User
):
    await restrict(db_session, moderator, regular_user)

    response = await client.get(
        f"/api/v1/moderation/users/{regular_user.id}/restrictions",
        headers=auth_headers(regular_user),
    )

    assert response.status_code == 200
    restrictions = response.json()["restrictions"]
    assert len(restrictions) == 1
    assert restrictions[0]["restriction_type"] == "posting_disabled"
    assert restrictions[0]["is_active"] is True


@pytest.mark.asyncio
async def test_user_cannot_see_others_restrictions(
    client: AsyncClient, regular_user: User, other_user: User
):
    response = await client.get(
        f"/api/v1/moderation/users/{other_user.id}/restrictions",
        headers=auth_headers(regular_user),
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_can_perform_endpoint(
    client: AsyncClient, db_session: AsyncSession, regular_user: User, moderator: User
):
    await restrict(db_session, moderator, regular_user, RestrictionType.upload_disabled)
    headers = auth_headers(moderator)

    upload = await client.get(
        f"/api/v1/moderation/users/{regular_user.id}/can/upload", headers=headers
    )
    post = await client.get(f"/api/v1/moderation/users/{regular_user.id}/can/post", headers=headers)

    assert upload.json() == {"user_id": str(regular_user.id), "action": "upload", "allowed": False}
    assert post.json()["allowed"] is True


@pytest.mark.asyncio
async def test_apply_restriction_via_api(
    client: AsyncClient, regular_user: User, moderator: User
):
    response = await client.post(
        "/api/v1/moderation/restrictions",
        json={
            "user_id": str(regular_user.id),
            "restriction_type": "commenting_disabled",
            "reason": "Spamming comments",
            "duration_days": 2,
        },
        headers=auth_headers(moderator),
    )

    assert response.status_code == 201
    data = response.json()
    assert data["restriction_type"] == "commenting_disabled"
    assert data["applied_by"] == str(moderator.id)
    assert data["related_action_id"] is not None


@pytest.mark.asyncio
async def test_suspension_status_endpoint(
    client: AsyncClient, db_session: AsyncSession, regular_user: User, moderator: User
):
    await restrict(db_session, moderator, regular_user, RestrictionType.suspended, 5)

    response = await client.get(
        f"/api/v1/moderation/users/{regular_user.id}/suspension",
        headers=auth_headers(moderator),
    )

    assert response.status_code == 200
    data = response.json()
    assert data["is_suspended"] is True
    assert data["is_permanent"] is False
    assert data["reason"] == "Posting spam"
