from datetime import datetime, timezone

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from moderation_core.models.moderation_action import ModerationAction
from moderation_core.models.report import Report
from moderation_core.models.user_restriction import UserRestriction
from moderation_core.schemas.moderation import ModerationMetricsResponse, ModerationOperation
from moderation_core.schemas.report import OPEN_REPORT_STATUSES
from moderation_core.services.authorization_service import Actor, ensure_authorized


async def get_moderation_metrics(
    db: AsyncSession,
    actor: Actor,
    now: datetime | None = None,
) -> ModerationMetricsResponse:
    """Read-only counts over reports, the action log and restrictions."""
    ensure_authorized(actor, ModerationOperation.view_metrics)
    now = now or datetime.now(timezone.utc)
    open_statuses = [s.value for s in OPEN_REPORT_STATUSES]

    rows = await db.execute(select(Report.status, func.count(Report.id)).group_by(Report.status))
    reports_by_status = {status: count for status, count in rows.all()}

    flagged_open = (
        await db.execute(
            select(func.count(Report.id)).where(
                Report.status.in_(open_statuses),
                Report.moderator_flagged.is_(True),
            )
        )
    ).scalar() or 0

    rows = await db.execute(
        select(ModerationAction.action_type, func.count(ModerationAction.id)).group_by(
            ModerationAction.action_type
        )
    )
    actions_by_type = {action_type: count for action_type, count in rows.all()}
    total_actions = sum(actions_by_type.values())

    # Self-reversal lives in the JSON metadata, so it is counted in Python
    reversed_rows = await db.execute(
        select(ModerationAction.action_metadata).where(ModerationAction.revoked_at.is_not(None))
    )
    reversed_metadata = reversed_rows.scalars().all()
    reversed_actions = len(reversed_metadata)
    self_reversals = sum(1 for metadata in reversed_metadata if (metadata or {}).get("self_reversal"))

    active_restrictions = (
        await db.execute(
            select(func.count(UserRestriction.id)).where(
                UserRestriction.is_active.is_(True),
                or_(UserRestriction.expires_at.is_(None), UserRestriction.expires_at > now),
            )
        )
    ).scalar() or 0

    return ModerationMetricsResponse(
        reports_by_status=reports_by_status,
        open_reports=sum(reports_by_status.get(s, 0) for s in open_statuses),
        moderator_flagged_open=flagged_open,
        actions_by_type=actions_by_type,
        total_actions=total_actions,
        reversed_actions=reversed_actions,
        reversal_rate=round(reversed_actions / total_actions, 4) if total_actions else 0.0,
        self_reversals=self_reversals,
        active_restrictions=active_restrictions,
    )
