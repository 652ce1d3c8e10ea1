"""
Boundary to the content store (posts, comments, tracks).

The engine only needs two things from it: who owns a piece of content, and a
way to take content down. Deployments plug in their own gateway; the default
records a tombstone that the content store can honour.
"""

import logging
from typing import Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from moderation_core.models.content_tombstone import ContentTombstone

logger = logging.getLogger(__name__)


class ContentGateway(Protocol):
    async def get_owner_id(
        self, db: AsyncSession, content_type: str, content_id: UUID
    ) -> UUID | None: ...

    async def remove_content(
        self,
        db: AsyncSession,
        content_type: str,
        content_id: UUID,
        removed_by: UUID,
        reason: str,
        action_id: UUID | None = None,
    ) -> None: ...


class TombstoneContentGateway:
    """Marks content removed in content_tombstones; ownership is unknown."""

    async def get_owner_id(
        self, db: AsyncSession, content_type: str, content_id: UUID
    ) -> UUID | None:
        return None

    async def remove_content(
        self,
        db: AsyncSession,
        content_type: str,
        content_id: UUID,
        removed_by: UUID,
        reason: str,
        action_id: UUID | None = None,
    ) -> None:
        result = await db.execute(
            select(ContentTombstone).where(
                ContentTombstone.content_type == content_type,
                ContentTombstone.content_id == content_id,
            )
        )
        if result.scalar_one_or_none() is not None:
            logger.info("Content %s/%s already removed", content_type, content_id)
            return

        db.add(
            ContentTombstone(
                content_type=content_type,
                content_id=content_id,
                removed_by=removed_by,
                action_id=action_id,
                reason=reason,
            )
        )
        await db.flush()
        logger.info("Content %s/%s removed by %s", content_type, content_id, removed_by)


async def is_content_removed(db: AsyncSession, content_type: str, content_id: UUID) -> bool:
    result = await db.execute(
        select(ContentTombstone.id).where(
            ContentTombstone.content_type == content_type,
            ContentTombstone.content_id == content_id,
        )
    )
    return result.scalar_one_or_none() is not None


_default_gateway: ContentGateway = TombstoneContentGateway()


def get_content_gateway() -> ContentGateway:
    return _default_gateway
