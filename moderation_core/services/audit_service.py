from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from moderation_core.config import settings
from moderation_core.core.exceptions import ValidationError
from moderation_core.models.moderation_action import ModerationAction
from moderation_core.models.user import User
from moderation_core.schemas.moderation import LogFilters, ModerationOperation
from moderation_core.services.authorization_service import Actor, ensure_authorized


def _search_clause(search: str):
    term = search.strip()
    try:
        as_uuid = UUID(term)
    except ValueError:
        as_uuid = None

    pattern = f"%{term}%"
    target_users = select(User.id).where(
        or_(User.email.ilike(pattern), User.display_name.ilike(pattern))
    )
    clauses = [ModerationAction.target_user_id.in_(target_users)]
    if as_uuid is not None:
        clauses.append(ModerationAction.target_user_id == as_uuid)
        clauses.append(ModerationAction.target_id == as_uuid)
    return or_(*clauses)


async def fetch_moderation_logs(
    db: AsyncSession,
    actor: Actor,
    filters: LogFilters | None = None,
    limit: int = 100,
    offset: int = 0,
    now: datetime | None = None,
) -> tuple[list[ModerationAction], int]:
    """Audit trail of moderation actions, newest first."""
    ensure_authorized(actor, ModerationOperation.view_logs)
    filters = filters or LogFilters()
    now = now or datetime.now(timezone.utc)

    if filters.reversed_only and filters.non_reversed_only:
        raise ValidationError("reversed_only and non_reversed_only are mutually exclusive")
    if filters.expired_only and filters.non_expired_only:
        raise ValidationError("expired_only and non_expired_only are mutually exclusive")

    query = select(ModerationAction)

    if filters.action_type is not None:
        query = query.where(ModerationAction.action_type == filters.action_type.value)
    if filters.moderator_id is not None:
        query = query.where(ModerationAction.moderator_id == filters.moderator_id)
    if filters.target_user_id is not None:
        query = query.where(ModerationAction.target_user_id == filters.target_user_id)
    if filters.start_date is not None:
        query = query.where(ModerationAction.created_at >= filters.start_date)
    if filters.end_date is not None:
        query = query.where(ModerationAction.created_at <= filters.end_date)
    if filters.search:
        query = query.where(_search_clause(filters.search))

    if filters.reversed_only:
        query = query.where(ModerationAction.revoked_at.is_not(None))
    if filters.non_reversed_only:
        query = query.where(ModerationAction.revoked_at.is_(None))
    if filters.recently_reversed:
        since = now - timedelta(days=settings.RECENTLY_REVERSED_DAYS)
        query = query.where(ModerationAction.revoked_at >= since)

    if filters.expired_only:
        query = query.where(
            ModerationAction.expires_at.is_not(None),
            ModerationAction.expires_at <= now,
        )
    if filters.non_expired_only:
        query = query.where(
            or_(ModerationAction.expires_at.is_(None), ModerationAction.expires_at > now)
        )

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar() or 0

    query = query.order_by(ModerationAction.created_at.desc()).offset(offset).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all()), total


async def get_user_moderation_history(
    db: AsyncSession,
    actor: Actor,
    user_id: UUID,
    limit: int = 50,
) -> list[ModerationAction]:
    ensure_authorized(actor, ModerationOperation.view_logs)
    result = await db.execute(
        select(ModerationAction)
        .where(ModerationAction.target_user_id == user_id)
        .order_by(ModerationAction.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
