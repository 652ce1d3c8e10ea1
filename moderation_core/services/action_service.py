"""
Applying moderation actions.

Every entry point runs as a single transaction: report transition,
restriction, audit row, notification event and rate-limit hit are committed
together or not at all.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, assert_never
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from moderation_core.config import settings
from moderation_core.core.exceptions import InvalidActionError, NotFoundError, ValidationError
from moderation_core.database import atomic
from moderation_core.models.moderation_action import ModerationAction
from moderation_core.models.user import User
from moderation_core.models.user_restriction import UserRestriction
from moderation_core.schemas.moderation import ActionType, ModerationOperation, RestrictionType
from moderation_core.schemas.report import TERMINAL_REPORT_STATUSES, ReportStatus, ReportType
from moderation_core.services import (
    notification_service,
    report_service,
    restriction_service,
    user_service,
)
from moderation_core.services.authorization_service import Actor, ensure_authorized
from moderation_core.services.content_service import ContentGateway, get_content_gateway
from moderation_core.services.rate_limit_service import RateLimitScope, enforce
from moderation_core.services.report_service import parse_report_type, sanitize_text, validate_length
from moderation_core.services.restriction_service import RestrictionChange

logger = logging.getLogger(__name__)


def _parse_action_type(value: ActionType | str) -> ActionType:
    try:
        return ActionType(value)
    except ValueError:
        raise ValidationError(f"Unknown action type: {value}", field="action_type")


def _parse_restriction_type(value: RestrictionType | str) -> RestrictionType:
    try:
        return RestrictionType(value)
    except ValueError:
        raise ValidationError(f"Unknown restriction type: {value}", field="restriction_type")


def _validate_reason(reason: str) -> str:
    cleaned = sanitize_text(reason)
    if cleaned is None:
        raise ValidationError("Reason is required", field="reason")
    validate_length(cleaned, settings.MAX_REASON_LENGTH, "reason")
    return cleaned


def _validate_duration(duration_days: int | None) -> None:
    if duration_days is not None and duration_days < 1:
        raise ValidationError("Duration must be at least one day", field="duration_days")


def _expiry(now: datetime, duration_days: int | None) -> datetime | None:
    if duration_days is None:
        return None
    return now + timedelta(days=duration_days)


def state_change(
    now: datetime,
    change: str,
    by_user_id: UUID,
    reason: str,
    is_self_action: bool = False,
) -> dict[str, Any]:
    return {
        "timestamp": now.isoformat(),
        "action": change,
        "by_user_id": str(by_user_id),
        "reason": reason,
        "is_self_action": is_self_action,
    }


def _record_restriction_change(action: ModerationAction, change: RestrictionChange) -> None:
    metadata = dict(action.action_metadata or {})
    metadata["restriction_id"] = str(change.restriction.id)
    if change.updated:
        metadata["restriction_updated"] = True
        metadata["previous_expires_at"] = (
            change.previous_expires_at.isoformat() if change.previous_expires_at else None
        )
        if change.previous_action_id is not None:
            metadata["superseded_action_id"] = str(change.previous_action_id)
    action.action_metadata = metadata


async def _restrict(
    db: AsyncSession,
    actor: Actor,
    target: User,
    restriction_type: RestrictionType,
    expires_at: datetime | None,
    reason: str,
    related_action_id: UUID | None,
    now: datetime,
) -> RestrictionChange:
    change = await restriction_service.set_restriction(
        db,
        user_id=target.id,
        restriction_type=restriction_type,
        expires_at=expires_at,
        reason=reason,
        applied_by=actor.id,
        related_action_id=related_action_id,
        now=now,
        actor=actor,
    )
    if restriction_type is RestrictionType.suspended:
        await restriction_service.sync_user_status(db, target.id, now)
    return change


async def _apply_effect(
    db: AsyncSession,
    actor: Actor,
    action: ModerationAction,
    action_type: ActionType,
    target: User,
    restriction_type: RestrictionType | None,
    content_gateway: ContentGateway,
    now: datetime,
) -> RestrictionChange | None:
    if action_type is ActionType.content_removed:
        await content_gateway.remove_content(
            db,
            content_type=action.target_type,
            content_id=action.target_id,
            removed_by=actor.id,
            reason=action.reason,
            action_id=action.id,
        )
        return None
    elif action_type is ActionType.content_approved:
        return None
    elif action_type is ActionType.user_warned:
        return None
    elif action_type is ActionType.user_suspended:
        return await _restrict(
            db, actor, target, RestrictionType.suspended, action.expires_at, action.reason, action.id, now
        )
    elif action_type is ActionType.user_banned:
        return await _restrict(
            db, actor, target, RestrictionType.suspended, None, action.reason, action.id, now
        )
    elif action_type is ActionType.restriction_applied:
        return await _restrict(
            db, actor, target, restriction_type, action.expires_at, action.reason, action.id, now
        )
    else:
        assert_never(action_type)


def _resolve_effect_params(
    action_type: ActionType,
    report_type: str,
    report_target_id: UUID,
    duration_days: int | None,
    restriction_type: RestrictionType | str | None,
    target_type: ReportType | str | None,
    target_id: UUID | None,
) -> tuple[RestrictionType | None, str | None, UUID | None]:
    _validate_duration(duration_days)

    if target_type is None and target_id is None and report_type != ReportType.user.value:
        target_type, target_id = report_type, report_target_id
    if target_type is not None:
        target_type = parse_report_type(target_type, field="target_type").value

    if action_type is ActionType.content_removed:
        if target_type is None or target_id is None or target_type == ReportType.user.value:
            raise ValidationError("Content removal needs a post, comment or track target", field="target_id")

    if action_type is ActionType.user_suspended and duration_days is None:
        raise ValidationError(
            "Suspensions need a duration; permanent suspension is a ban", field="duration_days"
        )
    if action_type is ActionType.user_banned and duration_days is not None:
        raise ValidationError("Bans are permanent and take no duration", field="duration_days")

    if action_type is ActionType.restriction_applied:
        if restriction_type is None:
            raise ValidationError("Restriction type is required", field="restriction_type")
        restriction_type = _parse_restriction_type(restriction_type)
        if restriction_type is RestrictionType.suspended:
            raise ValidationError(
                "Use user_suspended or user_banned to suspend an account", field="restriction_type"
            )
    elif action_type is ActionType.user_suspended or action_type is ActionType.user_banned:
        restriction_type = RestrictionType.suspended
    else:
        restriction_type = None

    return restriction_type, target_type, target_id


async def take_moderation_action(
    db: AsyncSession,
    actor: Actor,
    report_id: UUID,
    action_type: ActionType | str,
    target_user_id: UUID,
    reason: str,
    duration_days: int | None = None,
    internal_notes: str | None = None,
    notification_message: str | None = None,
    restriction_type: RestrictionType | str | None = None,
    target_type: ReportType | str | None = None,
    target_id: UUID | None = None,
    send_notification: bool = True,
    content_gateway: ContentGateway | None = None,
    now: datetime | None = None,
) -> ModerationAction:
    """Act on a report: apply the effect, close the report, write the audit row."""
    now = now or datetime.now(timezone.utc)
    content_gateway = content_gateway or get_content_gateway()
    action_type = _parse_action_type(action_type)

    async with atomic(db):
        report = await report_service.get_report_or_404(db, report_id, for_update=True)
        if ReportStatus(report.status) in TERMINAL_REPORT_STATUSES:
            raise InvalidActionError(f"Report has already been {report.status}")

        target = await user_service.get_user_or_404(db, target_user_id)
        ensure_authorized(actor, ModerationOperation(action_type.value), target.role, target.id)

        await enforce(db, RateLimitScope.actions, actor.id, now)

        reason = _validate_reason(reason)
        internal_notes = sanitize_text(internal_notes)
        validate_length(internal_notes, settings.MAX_INTERNAL_NOTES_LENGTH, "internal_notes")
        notification_message = sanitize_text(notification_message)
        validate_length(
            notification_message, settings.MAX_NOTIFICATION_MESSAGE_LENGTH, "notification_message"
        )
        restriction_type, target_type, target_id = _resolve_effect_params(
            action_type,
            report.report_type,
            report.target_id,
            duration_days,
            restriction_type,
            target_type,
            target_id,
        )

        action = ModerationAction(
            moderator_id=actor.id,
            target_user_id=target.id,
            action_type=action_type.value,
            target_type=target_type,
            target_id=target_id,
            reason=reason,
            duration_days=duration_days,
            expires_at=_expiry(now, duration_days),
            related_report_id=report.id,
            internal_notes=internal_notes,
            notification_sent=False,
            notification_message=notification_message,
            created_at=now,
            action_metadata={"state_changes": [state_change(now, "applied", actor.id, reason)]},
        )
        db.add(action)
        await db.flush()

        change = await _apply_effect(
            db, actor, action, action_type, target, restriction_type, content_gateway, now
        )
        if change is not None:
            _record_restriction_change(action, change)

        new_status = (
            ReportStatus.dismissed
            if action_type is ActionType.content_approved
            else ReportStatus.resolved
        )
        report_service.transition_report(
            report,
            new_status,
            reviewed_by=actor.id,
            now=now,
            resolution_notes=internal_notes,
            action_taken=action_type.value,
        )

        if send_notification and action_type is not ActionType.content_approved:
            await notification_service.notify_action_applied(db, action, restriction_type)

    logger.info(
        "Action %s (%s) by %s on user %s, report %s -> %s",
        action.id,
        action_type.value,
        actor.id,
        target.id,
        report.id,
        new_status.value,
    )
    return action


async def apply_restriction(
    db: AsyncSession,
    actor: Actor,
    user_id: UUID,
    restriction_type: RestrictionType | str,
    reason: str,
    duration_days: int | None = None,
    related_action_id: UUID | None = None,
    send_notification: bool = True,
    now: datetime | None = None,
) -> UserRestriction:
    """Restrict a user outside the report flow.

    Without related_action_id an audit row is written for the restriction in
    the same transaction.
    """
    now = now or datetime.now(timezone.utc)
    restriction_type = _parse_restriction_type(restriction_type)

    if restriction_type is not RestrictionType.suspended:
        action_type = ActionType.restriction_applied
        operation = ModerationOperation.apply_restriction
    elif duration_days is None:
        action_type = ActionType.user_banned
        operation = ModerationOperation.user_banned
    else:
        action_type = ActionType.user_suspended
        operation = ModerationOperation.user_suspended

    async with atomic(db):
        target = await user_service.get_user_or_404(db, user_id)
        ensure_authorized(actor, operation, target.role, target.id)

        await enforce(db, RateLimitScope.actions, actor.id, now)

        reason = _validate_reason(reason)
        _validate_duration(duration_days)
        expires_at = _expiry(now, duration_days)

        action: ModerationAction | None = None
        if related_action_id is not None:
            action = (
                await db.execute(
                    select(ModerationAction).where(ModerationAction.id == related_action_id)
                )
            ).scalar_one_or_none()
            if action is None:
                raise NotFoundError("Related moderation action not found", resource="moderation_action")
            if action.is_revoked:
                raise InvalidActionError("Related moderation action has been reversed")
            if action.target_user_id != target.id:
                raise ValidationError(
                    "Related action targets a different user", field="related_action_id"
                )
            audit_row = None
        else:
            audit_row = ModerationAction(
                moderator_id=actor.id,
                target_user_id=target.id,
                action_type=action_type.value,
                reason=reason,
                duration_days=duration_days,
                expires_at=expires_at,
                notification_sent=False,
                created_at=now,
                action_metadata={
                    "restriction_type": restriction_type.value,
                    "state_changes": [state_change(now, "applied", actor.id, reason)],
                },
            )
            db.add(audit_row)
            await db.flush()
            related_action_id = audit_row.id

        change = await _restrict(
            db, actor, target, restriction_type, expires_at, reason, related_action_id, now
        )
        if audit_row is not None:
            _record_restriction_change(audit_row, change)

        if send_notification:
            await notification_service.notify_restriction_applied(
                db,
                user_id=target.id,
                restriction_type=restriction_type,
                reason=reason,
                duration_days=duration_days,
                expires_at=expires_at,
                related_action_id=related_action_id,
            )
            if audit_row is not None:
                audit_row.notification_sent = True

    logger.info(
        "Restriction %s (%s) %s for user %s by %s",
        change.restriction.id,
        restriction_type.value,
        "updated" if change.updated else "applied",
        target.id,
        actor.id,
    )
    return change.restriction
