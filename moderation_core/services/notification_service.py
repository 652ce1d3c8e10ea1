"""
Notification events for moderation outcomes.

Events are written to the notification_events outbox inside the caller's
transaction; delivering them is someone else's job.
"""

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from moderation_core.models.moderation_action import ModerationAction
from moderation_core.models.notification import NotificationEvent
from moderation_core.models.report import Report
from moderation_core.models.user import User
from moderation_core.schemas.moderation import ActionType, RestrictionType

logger = logging.getLogger(__name__)

GUIDELINES_FOOTER = (
    "Please continue to follow our community guidelines to maintain your account "
    "in good standing. Thank you for your cooperation."
)

ACTION_TITLES = {
    ActionType.content_removed: "Content Removed",
    ActionType.user_warned: "Warning Issued",
    ActionType.user_suspended: "Account Suspended",
    ActionType.user_banned: "Account Suspended Permanently",
    ActionType.restriction_applied: "Account Restriction Applied",
}

ACTION_PRIORITIES = {
    ActionType.user_banned: 3,
    ActionType.user_suspended: 3,
    ActionType.restriction_applied: 2,
    ActionType.content_removed: 2,
    ActionType.user_warned: 1,
}

REVERSAL_TITLES = {
    ActionType.user_suspended: "Suspension Lifted",
    ActionType.user_banned: "Permanent Suspension Removed",
    ActionType.restriction_applied: "Restriction Removed",
    ActionType.user_warned: "Warning Revoked",
    ActionType.content_removed: "Content Removal Revoked",
}

RESTRICTION_LABELS = {
    RestrictionType.posting_disabled: "posting",
    RestrictionType.commenting_disabled: "commenting",
    RestrictionType.upload_disabled: "upload",
    RestrictionType.suspended: "suspension",
}

RESTRICTION_DESCRIPTIONS = {
    RestrictionType.posting_disabled: "You will not be able to create new posts.",
    RestrictionType.commenting_disabled: "You will not be able to comment on posts or tracks.",
    RestrictionType.upload_disabled: "You will not be able to upload new tracks.",
    RestrictionType.suspended: "You will not be able to use the platform.",
}


def _duration_lines(duration_days: int | None, expires_at: datetime | None) -> str:
    if not duration_days:
        return "Duration: Permanent\n\n"
    plural = "s" if duration_days > 1 else ""
    text = f"Duration: {duration_days} day{plural}\n"
    if expires_at is not None:
        text += f"This will be lifted automatically on {expires_at:%Y-%m-%d %H:%M} UTC.\n"
    return text + "\n"


def render_action_message(
    action_type: ActionType,
    reason: str,
    custom_message: str | None = None,
    duration_days: int | None = None,
    expires_at: datetime | None = None,
    target_type: str | None = None,
    restriction_type: RestrictionType | None = None,
) -> str:
    extra = f"Additional information: {custom_message}\n\n" if custom_message else ""

    if action_type is ActionType.content_removed:
        label = target_type if target_type in ("post", "comment", "track") else "content"
        return (
            f"Your {label} has been removed for violating our community guidelines.\n\n"
            f"Reason: {reason}\n\n{extra}"
            "If you believe this was done in error, you may appeal this decision. "
            "Please review our community guidelines to avoid future violations."
        )
    if action_type is ActionType.user_warned:
        extra = f"Message from moderator: {custom_message}\n\n" if custom_message else ""
        return (
            "You have received a warning for violating our community guidelines.\n\n"
            f"Reason: {reason}\n\n{extra}"
            "Please review our community guidelines to avoid future violations. "
            "Repeated violations may result in account restrictions or suspension."
        )
    if action_type is ActionType.user_suspended:
        return (
            "Your account has been suspended for violating our community guidelines.\n\n"
            f"Reason: {reason}\n\n"
            f"{_duration_lines(duration_days, expires_at)}{extra}"
            "During the suspension period you will not be able to create posts or "
            "comments, upload tracks or interact with other users.\n\n"
            "If you believe this suspension was issued in error, you may appeal this decision."
        )
    if action_type is ActionType.user_banned:
        return (
            "Your account has been permanently suspended for severe or repeated "
            "violations of our community guidelines.\n\n"
            f"Reason: {reason}\n\n{extra}"
            "This is a permanent suspension. Your account will not be restored.\n\n"
            "If you believe this suspension was issued in error, you may appeal "
            "this decision within 30 days."
        )
    # restriction_applied
    restriction_type = restriction_type or RestrictionType.posting_disabled
    return (
        f"A {RESTRICTION_LABELS[restriction_type]} restriction has been applied to your account.\n\n"
        f"Reason: {reason}\n\n"
        f"{RESTRICTION_DESCRIPTIONS[restriction_type]}\n"
        f"{_duration_lines(duration_days, expires_at)}{extra}"
        "If you believe this restriction was applied in error, you may appeal this decision."
    )


def render_reversal_message(action_type: ActionType, reason: str) -> str:
    if action_type is ActionType.user_suspended:
        body = "Your account suspension has been lifted. Your account has been restored."
    elif action_type is ActionType.user_banned:
        body = "Your permanent suspension has been removed. Your account has been restored."
    elif action_type is ActionType.restriction_applied:
        body = "A restriction on your account has been removed."
    elif action_type is ActionType.user_warned:
        body = "A warning on your account has been revoked."
    else:
        body = (
            "A content removal on your account has been revoked. "
            "The removed content is not restored automatically."
        )
    return f"{body}\n\nReason: {reason}\n\n{GUIDELINES_FOOTER}"


def render_expiration(restriction_type: RestrictionType) -> tuple[str, str]:
    if restriction_type is RestrictionType.suspended:
        return (
            "Account Suspension Expired",
            "Your account suspension has expired. Your account has been restored.\n\n"
            "You can now create posts and comments, upload tracks and interact with "
            f"other users.\n\n{GUIDELINES_FOOTER}",
        )
    return (
        "Account Restriction Lifted",
        f"Your {RESTRICTION_LABELS[restriction_type]} restriction has expired and has "
        "been lifted.\n\nYou can now use all platform features normally.\n\n"
        f"{GUIDELINES_FOOTER}",
    )


async def emit(
    db: AsyncSession,
    recipient_id: UUID,
    kind: str,
    title: str,
    message: str,
    priority: int = 1,
    payload: dict[str, Any] | None = None,
    related_action_id: UUID | None = None,
    related_report_id: UUID | None = None,
) -> NotificationEvent:
    event = NotificationEvent(
        recipient_id=recipient_id,
        kind=kind,
        title=title,
        message=message,
        priority=priority,
        payload=payload or {},
        related_action_id=related_action_id,
        related_report_id=related_report_id,
    )
    db.add(event)
    await db.flush()
    logger.info("Notification queued kind=%s recipient_id=%s", kind, recipient_id)
    return event


async def notify_action_applied(
    db: AsyncSession,
    action: ModerationAction,
    restriction_type: RestrictionType | None = None,
) -> NotificationEvent:
    action_type = ActionType(action.action_type)
    message = render_action_message(
        action_type,
        reason=action.reason,
        custom_message=action.notification_message,
        duration_days=action.duration_days,
        expires_at=action.expires_at,
        target_type=action.target_type,
        restriction_type=restriction_type,
    )
    event = await emit(
        db,
        recipient_id=action.target_user_id,
        kind="action_applied",
        title=ACTION_TITLES.get(action_type, "Moderation Action"),
        message=message,
        priority=ACTION_PRIORITIES.get(action_type, 1),
        payload={
            "action_type": action_type.value,
            "restriction_type": restriction_type.value if restriction_type else None,
            "expires_at": action.expires_at.isoformat() if action.expires_at else None,
        },
        related_action_id=action.id,
        related_report_id=action.related_report_id,
    )
    action.notification_sent = True
    return event


async def notify_restriction_applied(
    db: AsyncSession,
    user_id: UUID,
    restriction_type: RestrictionType,
    reason: str,
    duration_days: int | None,
    expires_at: datetime | None,
    related_action_id: UUID | None = None,
) -> NotificationEvent:
    if restriction_type is RestrictionType.suspended:
        action_type = ActionType.user_suspended if expires_at else ActionType.user_banned
    else:
        action_type = ActionType.restriction_applied
    return await emit(
        db,
        recipient_id=user_id,
        kind="action_applied",
        title=ACTION_TITLES[action_type],
        message=render_action_message(
            action_type,
            reason=reason,
            duration_days=duration_days,
            expires_at=expires_at,
            restriction_type=restriction_type,
        ),
        priority=ACTION_PRIORITIES[action_type],
        payload={
            "action_type": action_type.value,
            "restriction_type": restriction_type.value,
            "expires_at": expires_at.isoformat() if expires_at else None,
        },
        related_action_id=related_action_id,
    )


async def notify_action_reversed(
    db: AsyncSession,
    action: ModerationAction,
    reversal_reason: str,
) -> NotificationEvent:
    action_type = ActionType(action.action_type)
    return await emit(
        db,
        recipient_id=action.target_user_id,
        kind="action_reversed",
        title=REVERSAL_TITLES.get(action_type, "Moderation Action Reversed"),
        message=render_reversal_message(action_type, reversal_reason),
        priority=2,
        payload={"action_type": action_type.value},
        related_action_id=action.id,
    )


async def notify_restriction_expired(
    db: AsyncSession,
    user_id: UUID,
    restriction_type: RestrictionType,
    related_action_id: UUID | None = None,
) -> NotificationEvent:
    title, message = render_expiration(restriction_type)
    return await emit(
        db,
        recipient_id=user_id,
        kind="restriction_expired",
        title=title,
        message=message,
        priority=2,
        payload={"restriction_type": restriction_type.value},
        related_action_id=related_action_id,
    )


async def notify_moderators_of_report(
    db: AsyncSession,
    report: Report,
    exclude_user_id: UUID | None = None,
) -> int:
    """Page every moderator and admin about an urgent report. Returns how many were notified."""
    query = select(User.id).where(User.role.in_(("moderator", "admin")))
    if exclude_user_id is not None:
        query = query.where(User.id != exclude_user_id)
    staff_ids = (await db.execute(query)).scalars().all()

    for staff_id in staff_ids:
        await emit(
            db,
            recipient_id=staff_id,
            kind="high_priority_report",
            title=f"Priority {report.priority} report",
            message=(
                f"A {report.report_type} was reported for {report.reason.replace('_', ' ')} "
                "and needs review."
            ),
            priority=3 if report.priority == 1 else 2,
            payload={"report_id": str(report.id), "priority": report.priority},
            related_report_id=report.id,
        )
    return len(staff_ids)
