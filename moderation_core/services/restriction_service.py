"""
Restriction store: at most one active restriction per (user, type).

Expiry is evaluated lazily on every read (a row past its expires_at counts as
inactive even while its flag is still set); the expiration job flips the flag
later for hygiene and notifications.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from moderation_core.core.exceptions import ValidationError
from moderation_core.models.user import User
from moderation_core.models.user_restriction import UserRestriction
from moderation_core.schemas.moderation import (
    ModerationOperation,
    RestrictionResponse,
    RestrictionType,
    SuspensionStatusResponse,
    UserAction,
)
from moderation_core.schemas.user import UserStatus
from moderation_core.services import notification_service
from moderation_core.services.authorization_service import Actor, ensure_authorized

logger = logging.getLogger(__name__)

ACTION_RESTRICTIONS: dict[UserAction, RestrictionType] = {
    UserAction.post: RestrictionType.posting_disabled,
    UserAction.comment: RestrictionType.commenting_disabled,
    UserAction.upload: RestrictionType.upload_disabled,
}


@dataclass
class RestrictionChange:
    restriction: UserRestriction
    updated: bool
    previous_expires_at: datetime | None = None
    previous_action_id: UUID | None = None


def _not_expired(now: datetime):
    return or_(UserRestriction.expires_at.is_(None), UserRestriction.expires_at > now)


def to_response(restriction: UserRestriction, now: datetime) -> RestrictionResponse:
    response = RestrictionResponse.model_validate(restriction)
    response.is_active = restriction.is_effective(now)
    return response


async def get_restriction(
    db: AsyncSession,
    restriction_id: UUID,
    for_update: bool = False,
) -> UserRestriction | None:
    query = select(UserRestriction).where(UserRestriction.id == restriction_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    return (await db.execute(query)).scalar_one_or_none()


async def set_restriction(
    db: AsyncSession,
    user_id: UUID,
    restriction_type: RestrictionType,
    expires_at: datetime | None,
    reason: str,
    applied_by: UUID,
    related_action_id: UUID | None,
    now: datetime,
    actor: Actor | None = None,
) -> RestrictionChange:
    """Create the restriction, or replace the expiry of the active one.

    The user row is locked first so concurrent calls for the same user
    serialize; the second writer's expiry wins. Replacing an active ban
    requires the actor to be allowed to reverse bans.
    """
    user = (
        await db.execute(select(User).where(User.id == user_id).with_for_update())
    ).scalar_one_or_none()

    existing = (
        await db.execute(
            select(UserRestriction)
            .where(
                UserRestriction.user_id == user_id,
                UserRestriction.restriction_type == restriction_type.value,
                UserRestriction.is_active.is_(True),
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()

    if existing is not None and existing.is_effective(now):
        if (
            actor is not None
            and existing.restriction_type == RestrictionType.suspended.value
            and existing.expires_at is None
        ):
            ensure_authorized(
                actor,
                ModerationOperation.reverse_ban,
                user.role if user is not None else None,
                user_id,
            )
        change = RestrictionChange(
            restriction=existing,
            updated=True,
            previous_expires_at=existing.expires_at,
            previous_action_id=existing.related_action_id,
        )
        existing.expires_at = expires_at
        existing.reason = reason
        existing.applied_by = applied_by
        existing.related_action_id = related_action_id
        await db.flush()
        logger.info(
            "Restriction %s (%s) for user %s updated, expires_at %s -> %s",
            existing.id,
            restriction_type.value,
            user_id,
            change.previous_expires_at,
            expires_at,
        )
        return change

    if existing is not None:
        # Lapsed but not yet swept by the expiration job
        existing.is_active = False
        await db.flush()
        await notification_service.notify_restriction_expired(
            db,
            user_id=user_id,
            restriction_type=restriction_type,
            related_action_id=existing.related_action_id,
        )

    restriction = UserRestriction(
        user_id=user_id,
        restriction_type=restriction_type.value,
        expires_at=expires_at,
        is_active=True,
        reason=reason,
        applied_by=applied_by,
        related_action_id=related_action_id,
    )
    db.add(restriction)
    await db.flush()
    logger.info(
        "Restriction %s (%s) applied to user %s until %s",
        restriction.id,
        restriction_type.value,
        user_id,
        expires_at or "permanent",
    )
    return RestrictionChange(restriction=restriction, updated=False)


async def deactivate_for_action(
    db: AsyncSession,
    action_id: UUID,
) -> list[UserRestriction]:
    """Flip off every active restriction owned by the given action."""
    result = await db.execute(
        select(UserRestriction)
        .where(
            UserRestriction.related_action_id == action_id,
            UserRestriction.is_active.is_(True),
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    restrictions = list(result.scalars().all())
    for restriction in restrictions:
        restriction.is_active = False
    await db.flush()
    return restrictions


async def sync_user_status(db: AsyncSession, user_id: UUID, now: datetime) -> str:
    """Derive users.status from the active suspension, if any."""
    suspension = (
        await db.execute(
            select(UserRestriction).where(
                UserRestriction.user_id == user_id,
                UserRestriction.restriction_type == RestrictionType.suspended.value,
                UserRestriction.is_active.is_(True),
                _not_expired(now),
            )
        )
    ).scalar_one_or_none()

    if suspension is None:
        status = UserStatus.active
    elif suspension.expires_at is None:
        status = UserStatus.banned
    else:
        status = UserStatus.suspended

    user = await db.get(User, user_id)
    if user is not None and user.status != status.value:
        logger.info("User %s status %s -> %s", user_id, user.status, status.value)
        user.status = status.value
        await db.flush()
    return status.value


async def check_user_restrictions(
    db: AsyncSession,
    user_id: UUID,
    include_inactive: bool = False,
    now: datetime | None = None,
) -> list[RestrictionResponse]:
    """Restrictions on record for the user, with is_active as of `now`.

    Rows whose stored flag is still set but whose expiry has passed are
    returned with is_active=False. include_inactive adds the full history.
    """
    now = now or datetime.now(timezone.utc)
    query = select(UserRestriction).where(UserRestriction.user_id == user_id)
    if not include_inactive:
        query = query.where(UserRestriction.is_active.is_(True))
    query = query.order_by(UserRestriction.created_at.desc())

    restrictions = (await db.execute(query)).scalars().all()
    return [to_response(r, now) for r in restrictions]


async def can_user_perform_action(
    db: AsyncSession,
    user_id: UUID,
    action: UserAction | str,
    now: datetime | None = None,
) -> bool:
    """False if an effective matching restriction or a suspension exists."""
    now = now or datetime.now(timezone.utc)
    try:
        action = UserAction(action)
    except ValueError:
        raise ValidationError(f"Unknown user action: {action}", field="action")
    blocking = (ACTION_RESTRICTIONS[action].value, RestrictionType.suspended.value)

    result = await db.execute(
        select(UserRestriction.id)
        .where(
            UserRestriction.user_id == user_id,
            UserRestriction.restriction_type.in_(blocking),
            UserRestriction.is_active.is_(True),
            _not_expired(now),
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is None


async def get_user_suspension_status(
    db: AsyncSession,
    user_id: UUID,
    now: datetime | None = None,
) -> SuspensionStatusResponse:
    now = now or datetime.now(timezone.utc)
    suspension = (
        await db.execute(
            select(UserRestriction).where(
                UserRestriction.user_id == user_id,
                UserRestriction.restriction_type == RestrictionType.suspended.value,
                UserRestriction.is_active.is_(True),
                _not_expired(now),
            )
        )
    ).scalar_one_or_none()

    if suspension is None:
        return SuspensionStatusResponse(user_id=user_id, is_suspended=False)
    return SuspensionStatusResponse(
        user_id=user_id,
        is_suspended=True,
        is_permanent=suspension.expires_at is None,
        expires_at=suspension.expires_at,
        reason=suspension.reason,
        restriction_id=suspension.id,
    )
