import logging
import re
from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from moderation_core.config import settings
from moderation_core.core.exceptions import InvalidActionError, NotFoundError, ValidationError
from moderation_core.database import atomic
from moderation_core.models.report import Report
from moderation_core.schemas.moderation import ModerationOperation
from moderation_core.schemas.report import (
    OPEN_REPORT_STATUSES,
    TERMINAL_REPORT_STATUSES,
    QueueFilters,
    ReportReason,
    ReportStatus,
    ReportType,
)
from moderation_core.schemas.user import UserRole
from moderation_core.services import notification_service, user_service
from moderation_core.services.authorization_service import Actor, ensure_authorized
from moderation_core.services.content_service import ContentGateway, get_content_gateway
from moderation_core.services.priority_service import calculate_priority, moderator_flag_priority
from moderation_core.services.rate_limit_service import RateLimitScope, enforce

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("moderation_core.security")

_TAG_RE = re.compile(r"<[^>]*>")


def sanitize_text(value: str | None) -> str | None:
    """Strip markup and null bytes from user-supplied text; blank becomes None."""
    if value is None:
        return None
    cleaned = _TAG_RE.sub("", value).replace("\x00", "").strip()
    return cleaned or None


def validate_length(value: str | None, limit: int, field: str) -> None:
    if value is not None and len(value) > limit:
        raise ValidationError(f"{field} must be {limit} characters or fewer", field=field)


def parse_report_type(value: ReportType | str, field: str = "report_type") -> ReportType:
    try:
        return ReportType(value)
    except ValueError:
        raise ValidationError(f"Unknown {field.replace('_', ' ')}: {value}", field=field)


def _parse_reason(value: ReportReason | str) -> ReportReason:
    try:
        return ReportReason(value)
    except ValueError:
        raise ValidationError(f"Unknown report reason: {value}", field="reason")


async def get_report(db: AsyncSession, report_id: UUID, for_update: bool = False) -> Report | None:
    query = select(Report).where(Report.id == report_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    return (await db.execute(query)).scalar_one_or_none()


async def _find_recent_duplicate(
    db: AsyncSession,
    reporter_id: UUID,
    report_type: ReportType,
    target_id: UUID,
    now: datetime,
) -> Report | None:
    since = now - timedelta(hours=settings.DUPLICATE_REPORT_WINDOW_HOURS)
    result = await db.execute(
        select(Report)
        .where(
            Report.reporter_id == reporter_id,
            Report.report_type == report_type.value,
            Report.target_id == target_id,
            Report.created_at > since,
        )
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _resolve_reported_user(
    db: AsyncSession,
    actor: Actor,
    report_type: ReportType,
    target_id: UUID,
    content_gateway: ContentGateway,
) -> UUID | None:
    if report_type is ReportType.user:
        target = await user_service.get_user_or_404(db, target_id)
        if target.id == actor.id:
            raise ValidationError("You cannot report your own profile", field="target_id")
        if target.role == UserRole.admin.value and not actor.is_admin:
            raise ValidationError("Admin accounts cannot be reported", field="target_id")
        return target.id

    owner_id = await content_gateway.get_owner_id(db, report_type.value, target_id)
    if owner_id is not None and owner_id == actor.id:
        raise ValidationError("You cannot report your own content", field="target_id")
    return owner_id


async def submit_report(
    db: AsyncSession,
    actor: Actor,
    report_type: ReportType,
    target_id: UUID,
    reason: ReportReason,
    description: str | None = None,
    content_gateway: ContentGateway | None = None,
    now: datetime | None = None,
) -> Report:
    """File a user report. Lands in the queue as pending with a reason-derived priority."""
    now = now or datetime.now(timezone.utc)
    content_gateway = content_gateway or get_content_gateway()
    report_type = parse_report_type(report_type)
    reason = _parse_reason(reason)

    description = sanitize_text(description)
    if reason is ReportReason.other and description is None:
        raise ValidationError(
            "Description is required when reason is 'other'", field="description"
        )
    validate_length(description, settings.MAX_DESCRIPTION_LENGTH, "description")

    async with atomic(db):
        ensure_authorized(actor, ModerationOperation.submit_report)

        reported_user_id = await _resolve_reported_user(
            db, actor, report_type, target_id, content_gateway
        )

        if await _find_recent_duplicate(db, actor.id, report_type, target_id, now):
            security_logger.info(
                "duplicate_report reporter_id=%s report_type=%s target_id=%s",
                actor.id,
                report_type.value,
                target_id,
            )
            raise ValidationError(
                "You have already reported this content recently", field="target_id"
            )

        await enforce(db, RateLimitScope.reports, actor.id, now)

        report = Report(
            reporter_id=actor.id,
            reported_user_id=reported_user_id,
            report_type=report_type.value,
            target_id=target_id,
            reason=reason.value,
            description=description,
            status=ReportStatus.pending.value,
            priority=calculate_priority(reason),
            moderator_flagged=False,
            created_at=now,
            updated_at=now,
        )
        db.add(report)
        await db.flush()

        if report.priority <= settings.HIGH_PRIORITY_NOTIFY_THRESHOLD:
            notified = await notification_service.notify_moderators_of_report(
                db, report, exclude_user_id=actor.id
            )
            logger.info("Report %s (P%d) paged %d staff", report.id, report.priority, notified)

    logger.info(
        "Report %s submitted by %s (%s/%s, P%d)",
        report.id,
        actor.id,
        report_type.value,
        target_id,
        report.priority,
    )
    return report


async def moderator_flag_content(
    db: AsyncSession,
    actor: Actor,
    report_type: ReportType,
    target_id: UUID,
    reason: ReportReason,
    internal_notes: str,
    priority: int | None = None,
    content_gateway: ContentGateway | None = None,
    now: datetime | None = None,
) -> Report:
    """Create a report directly in under_review, skipping the pending stage."""
    now = now or datetime.now(timezone.utc)
    content_gateway = content_gateway or get_content_gateway()
    report_type = parse_report_type(report_type)
    reason = _parse_reason(reason)

    internal_notes = sanitize_text(internal_notes)
    if internal_notes is None:
        raise ValidationError("Internal notes are required", field="internal_notes")
    validate_length(internal_notes, settings.MAX_INTERNAL_NOTES_LENGTH, "internal_notes")
    if priority is not None and not 1 <= priority <= 5:
        raise ValidationError("Priority must be between 1 and 5", field="priority")

    async with atomic(db):
        ensure_authorized(actor, ModerationOperation.flag_content)

        if report_type is ReportType.user:
            reported_user_id = (await user_service.get_user_or_404(db, target_id)).id
        else:
            reported_user_id = await content_gateway.get_owner_id(
                db, report_type.value, target_id
            )

        if await _find_recent_duplicate(db, actor.id, report_type, target_id, now):
            raise ValidationError("You have already flagged this content recently", field="target_id")

        report = Report(
            reporter_id=actor.id,
            reported_user_id=reported_user_id,
            report_type=report_type.value,
            target_id=target_id,
            reason=reason.value,
            description=internal_notes,
            status=ReportStatus.under_review.value,
            priority=moderator_flag_priority(reason, priority),
            moderator_flagged=True,
            created_at=now,
            updated_at=now,
        )
        db.add(report)

    logger.info("Content %s/%s flagged by moderator %s (P%d)", report_type.value, target_id, actor.id, report.priority)
    return report


def transition_report(
    report: Report,
    new_status: ReportStatus,
    reviewed_by: UUID,
    now: datetime,
    resolution_notes: str | None = None,
    action_taken: str | None = None,
) -> Report:
    """The only writer of Report.status. Terminal statuses are final."""
    current = ReportStatus(report.status)
    if current in TERMINAL_REPORT_STATUSES:
        raise InvalidActionError(f"Report is already {current.value}")
    if new_status not in TERMINAL_REPORT_STATUSES:
        raise InvalidActionError(f"Cannot move report from {current.value} to {new_status.value}")

    report.status = new_status.value
    report.reviewed_by = reviewed_by
    report.reviewed_at = now
    report.resolution_notes = resolution_notes
    report.action_taken = action_taken
    return report


async def fetch_moderation_queue(
    db: AsyncSession,
    actor: Actor,
    filters: QueueFilters | None = None,
) -> tuple[list[Report], int]:
    """Open reports, moderator flags first, then most urgent, then oldest."""
    ensure_authorized(actor, ModerationOperation.view_queue)
    filters = filters or QueueFilters()

    statuses = filters.status or list(OPEN_REPORT_STATUSES)
    query = select(Report).where(Report.status.in_([s.value for s in statuses]))

    if filters.priority is not None:
        query = query.where(Report.priority == filters.priority)
    if filters.moderator_flagged is not None:
        query = query.where(Report.moderator_flagged.is_(filters.moderator_flagged))
    if filters.report_type is not None:
        query = query.where(Report.report_type == filters.report_type.value)
    if filters.start_date is not None:
        query = query.where(Report.created_at >= filters.start_date)
    if filters.end_date is not None:
        query = query.where(Report.created_at <= filters.end_date)

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar() or 0

    query = (
        query.order_by(
            Report.moderator_flagged.desc(),
            Report.priority.asc(),
            Report.created_at.asc(),
        )
        .offset(filters.offset)
        .limit(filters.limit)
    )
    result = await db.execute(query)
    return list(result.scalars().all()), total


async def get_report_or_404(db: AsyncSession, report_id: UUID, for_update: bool = False) -> Report:
    report = await get_report(db, report_id, for_update=for_update)
    if report is None:
        raise NotFoundError("Report not found", resource="report")
    return report
