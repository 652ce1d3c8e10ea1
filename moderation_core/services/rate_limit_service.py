"""
Sliding-window rate limiting backed by the database.

Each limiter key owns a row in rate_limit_buckets that is locked for the
duration of the caller's transaction; hits are individual rows in
rate_limit_hits. Counting and recording a hit therefore happen atomically, and
a rolled-back operation takes its hit with it.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from moderation_core.config import settings
from moderation_core.core.exceptions import RateLimitError
from moderation_core.models.rate_limit import RateLimitBucket, RateLimitHit

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("moderation_core.security")


class RateLimitScope(str, Enum):
    reports = "reports"
    actions = "actions"


@dataclass(frozen=True)
class RateLimitRule:
    limit: int
    window: timedelta


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    retry_after: int


def get_rule(scope: RateLimitScope) -> RateLimitRule:
    if scope is RateLimitScope.reports:
        return RateLimitRule(
            limit=settings.REPORT_RATE_LIMIT,
            window=timedelta(seconds=settings.REPORT_RATE_WINDOW_SECONDS),
        )
    return RateLimitRule(
        limit=settings.MODERATION_ACTION_RATE_LIMIT,
        window=timedelta(seconds=settings.MODERATION_ACTION_RATE_WINDOW_SECONDS),
    )


def bucket_key(scope: RateLimitScope, actor_id: UUID) -> str:
    return f"{scope.value}:{actor_id}"


async def _lock_bucket(db: AsyncSession, key: str, now: datetime) -> None:
    """Create the bucket row if needed, then hold a row lock on it."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        insert = None

    if insert is not None:
        await db.execute(
            insert(RateLimitBucket)
            .values(key=key, updated_at=now)
            .on_conflict_do_nothing(index_elements=["key"])
        )
        bucket = (
            await db.execute(
                select(RateLimitBucket)
                .where(RateLimitBucket.key == key)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).scalar_one()
    else:
        bucket = (
            await db.execute(
                select(RateLimitBucket).where(RateLimitBucket.key == key).with_for_update()
            )
        ).scalar_one_or_none()
        if bucket is None:
            bucket = RateLimitBucket(key=key, updated_at=now)
            db.add(bucket)
            await db.flush()
    bucket.updated_at = now


async def check_and_increment(
    db: AsyncSession,
    scope: RateLimitScope,
    actor_id: UUID,
    now: datetime | None = None,
) -> RateLimitResult:
    """Count the actor's hits in the sliding window and record one more if allowed.

    Must run inside the transaction of the operation being limited.
    """
    now = now or datetime.now(timezone.utc)
    rule = get_rule(scope)
    key = bucket_key(scope, actor_id)
    window_start = now - rule.window

    await _lock_bucket(db, key, now)

    result = await db.execute(
        select(func.count(RateLimitHit.id), func.min(RateLimitHit.created_at)).where(
            RateLimitHit.key == key,
            RateLimitHit.created_at > window_start,
        )
    )
    count, oldest = result.one()

    if count >= rule.limit:
        retry_after = 1
        if oldest is not None:
            if oldest.tzinfo is None:
                oldest = oldest.replace(tzinfo=timezone.utc)
            retry_after = max(1, math.ceil((oldest + rule.window - now).total_seconds()))
        return RateLimitResult(allowed=False, remaining=0, retry_after=retry_after)

    db.add(RateLimitHit(key=key, created_at=now))
    await db.execute(
        delete(RateLimitHit).where(
            RateLimitHit.key == key,
            RateLimitHit.created_at <= window_start,
        )
    )
    await db.flush()
    return RateLimitResult(allowed=True, remaining=rule.limit - count - 1, retry_after=0)


async def enforce(
    db: AsyncSession,
    scope: RateLimitScope,
    actor_id: UUID,
    now: datetime | None = None,
) -> RateLimitResult:
    """check_and_increment, raising RATE_LIMIT_EXCEEDED when the window is full."""
    result = await check_and_increment(db, scope, actor_id, now)
    if not result.allowed:
        security_logger.warning(
            "rate_limit_exceeded scope=%s actor_id=%s retry_after=%d",
            scope.value,
            actor_id,
            result.retry_after,
        )
        if scope is RateLimitScope.reports:
            message = "Report limit reached. Please try again later"
        else:
            message = "Moderation action limit reached. Please try again later"
        raise RateLimitError(message=message, retry_after=result.retry_after, bucket=scope.value)
    return result
