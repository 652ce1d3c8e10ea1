"""
Reversing moderation actions.

A reversal is itself audited and can happen only once: the revoke is a
guarded UPDATE on revoked_at IS NULL, so of two concurrent attempts exactly
one succeeds. Content removal is not undone; the tombstone stays.
"""

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from moderation_core.config import settings
from moderation_core.core.exceptions import InvalidActionError, NotFoundError, ValidationError
from moderation_core.database import atomic
from moderation_core.models.moderation_action import ModerationAction
from moderation_core.models.user_restriction import UserRestriction
from moderation_core.schemas.moderation import ActionType, ModerationOperation, RestrictionType
from moderation_core.services import notification_service, restriction_service, user_service
from moderation_core.services.action_service import state_change
from moderation_core.services.authorization_service import Actor, ensure_authorized
from moderation_core.services.report_service import sanitize_text, validate_length

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("moderation_core.security")


def _validate_reversal_reason(reason: str) -> str:
    cleaned = sanitize_text(reason)
    if cleaned is None:
        raise ValidationError("Reversal reason is required", field="reason")
    validate_length(cleaned, settings.MAX_REASON_LENGTH, "reason")
    return cleaned


async def get_action(
    db: AsyncSession,
    action_id: UUID,
    for_update: bool = False,
) -> ModerationAction | None:
    query = select(ModerationAction).where(ModerationAction.id == action_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    return (await db.execute(query)).scalar_one_or_none()


async def _undo_effect(
    db: AsyncSession,
    action: ModerationAction,
    action_type: ActionType,
    now: datetime,
) -> list[UserRestriction]:
    # Restrictions can also be attached to warnings etc. via related_action_id
    lifted = await restriction_service.deactivate_for_action(db, action.id)
    if action_type in (ActionType.user_suspended, ActionType.user_banned) or any(
        r.restriction_type == RestrictionType.suspended.value for r in lifted
    ):
        await restriction_service.sync_user_status(db, action.target_user_id, now)

    if action_type is ActionType.content_removed:
        logger.warning(
            "Action %s reversed; removed content %s/%s is not restored",
            action.id,
            action.target_type,
            action.target_id,
        )
    return lifted


async def _revoke(
    db: AsyncSession,
    actor: Actor,
    action: ModerationAction,
    reversal_reason: str,
    now: datetime,
) -> ModerationAction:
    """Authorize, undo and mark an already row-locked action as revoked."""
    if action.is_revoked:
        raise InvalidActionError("This action has already been reversed")

    action_type = ActionType(action.action_type)
    target = await user_service.get_user_or_404(db, action.target_user_id)
    operation = (
        ModerationOperation.reverse_ban
        if action_type is ActionType.user_banned
        else ModerationOperation.reverse_action
    )
    ensure_authorized(actor, operation, target.role, target.id)

    is_self_reversal = actor.id == action.moderator_id

    lifted = await _undo_effect(db, action, action_type, now)

    metadata = dict(action.action_metadata or {})
    metadata["self_reversal"] = is_self_reversal
    metadata["reversal_reason"] = reversal_reason
    metadata["state_changes"] = list(metadata.get("state_changes", [])) + [
        state_change(now, "reversed", actor.id, reversal_reason, is_self_reversal)
    ]
    if lifted:
        metadata["lifted_restriction_ids"] = [str(r.id) for r in lifted]

    result = await db.execute(
        update(ModerationAction)
        .where(
            ModerationAction.id == action.id,
            ModerationAction.revoked_at.is_(None),
        )
        .values(revoked_at=now, revoked_by=actor.id, action_metadata=metadata)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidActionError("This action has already been reversed")

    await db.refresh(action)

    await notification_service.notify_action_reversed(db, action, reversal_reason)

    if is_self_reversal:
        security_logger.info(
            "self_reversal actor_id=%s action_id=%s action_type=%s",
            actor.id,
            action.id,
            action_type.value,
        )
    logger.info("Action %s (%s) reversed by %s", action.id, action_type.value, actor.id)
    return action


async def reverse_action(
    db: AsyncSession,
    actor: Actor,
    action_id: UUID,
    reversal_reason: str,
    now: datetime | None = None,
) -> ModerationAction:
    """Undo an action once. A second attempt fails with INVALID_ACTION."""
    now = now or datetime.now(timezone.utc)
    reversal_reason = _validate_reversal_reason(reversal_reason)

    async with atomic(db):
        action = await get_action(db, action_id, for_update=True)
        if action is None:
            raise NotFoundError("Moderation action not found", resource="moderation_action")
        await _revoke(db, actor, action, reversal_reason, now)

    return action


async def remove_user_restriction(
    db: AsyncSession,
    actor: Actor,
    restriction_id: UUID,
    reason: str,
    now: datetime | None = None,
) -> UserRestriction:
    """Lift a single restriction, reversing the action that owns it if there is one."""
    now = now or datetime.now(timezone.utc)
    reason = _validate_reversal_reason(reason)

    async with atomic(db):
        restriction = await restriction_service.get_restriction(db, restriction_id, for_update=True)
        if restriction is None:
            raise NotFoundError("Restriction not found", resource="user_restriction")
        if not restriction.is_effective(now):
            raise InvalidActionError("Restriction is no longer active")

        restriction_type = RestrictionType(restriction.restriction_type)
        target = await user_service.get_user_or_404(db, restriction.user_id)
        if restriction_type is RestrictionType.suspended and restriction.expires_at is None:
            operation = ModerationOperation.reverse_ban
        else:
            operation = ModerationOperation.remove_restriction
        ensure_authorized(actor, operation, target.role, target.id)

        action = None
        if restriction.related_action_id is not None:
            action = await get_action(db, restriction.related_action_id, for_update=True)

        if action is not None and not action.is_revoked:
            await _revoke(db, actor, action, reason, now)
        else:
            restriction.is_active = False
            await db.flush()
            if restriction_type is RestrictionType.suspended:
                await restriction_service.sync_user_status(db, target.id, now)
            await notification_service.emit(
                db,
                recipient_id=target.id,
                kind="action_reversed",
                title=(
                    "Suspension Lifted"
                    if restriction_type is RestrictionType.suspended
                    else "Restriction Removed"
                ),
                message=notification_service.render_reversal_message(
                    ActionType.user_suspended
                    if restriction_type is RestrictionType.suspended
                    else ActionType.restriction_applied,
                    reason,
                ),
                priority=2,
                payload={"restriction_type": restriction_type.value},
            )

        await db.refresh(restriction)

    logger.info("Restriction %s lifted by %s", restriction.id, actor.id)
    return restriction
