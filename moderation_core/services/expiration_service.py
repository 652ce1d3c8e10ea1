"""
Eager expiration of time-bound restrictions.

Reads already treat lapsed rows as inactive; these jobs flip the stored flag
and send the "expired" notification. Both are idempotent: a rerun simply
finds fewer rows matching the predicate.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from moderation_core.database import atomic
from moderation_core.models.user_restriction import UserRestriction
from moderation_core.schemas.moderation import RestrictionType
from moderation_core.services import notification_service, restriction_service

logger = logging.getLogger(__name__)


def _lapsed(now: datetime):
    return select(UserRestriction).where(
        UserRestriction.is_active.is_(True),
        UserRestriction.expires_at.is_not(None),
        UserRestriction.expires_at <= now,
    )


async def _expire(
    db: AsyncSession,
    query,
    now: datetime,
    sync_status: bool,
) -> int:
    async with atomic(db):
        result = await db.execute(
            query.order_by(UserRestriction.expires_at)
            .with_for_update(skip_locked=True)
            .execution_options(populate_existing=True)
        )
        restrictions = list(result.scalars().all())

        for restriction in restrictions:
            restriction.is_active = False
        await db.flush()

        for restriction in restrictions:
            if sync_status:
                await restriction_service.sync_user_status(db, restriction.user_id, now)
            await notification_service.notify_restriction_expired(
                db,
                user_id=restriction.user_id,
                restriction_type=RestrictionType(restriction.restriction_type),
                related_action_id=restriction.related_action_id,
            )

    return len(restrictions)


async def expire_restrictions(db: AsyncSession, now: datetime | None = None) -> int:
    """Flip lapsed posting/commenting/upload restrictions. Returns how many."""
    now = now or datetime.now(timezone.utc)
    query = _lapsed(now).where(UserRestriction.restriction_type != RestrictionType.suspended.value)
    count = await _expire(db, query, now, sync_status=False)
    if count:
        logger.info("Expired %d restrictions", count)
    return count


async def expire_suspensions(db: AsyncSession, now: datetime | None = None) -> int:
    """Flip lapsed suspensions and restore the users' status. Returns how many."""
    now = now or datetime.now(timezone.utc)
    query = _lapsed(now).where(UserRestriction.restriction_type == RestrictionType.suspended.value)
    count = await _expire(db, query, now, sync_status=True)
    if count:
        logger.info("Expired %d suspensions", count)
    return count
