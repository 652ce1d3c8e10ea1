from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from moderation_core.api.v1.endpoints.auth import get_authenticated_actor, get_current_actor
from moderation_core.database import get_db
from moderation_core.schemas.moderation import (
    ActionCreate,
    ActionResponse,
    ActionReverse,
    ActionType,
    CanPerformResponse,
    LogFilters,
    ModerationLogResponse,
    ModerationOperation,
    RestrictionCreate,
    RestrictionListResponse,
    RestrictionRemove,
    RestrictionResponse,
    SuspensionStatusResponse,
    UserAction,
)
from moderation_core.schemas.report import (
    ModerationQueueResponse,
    ModeratorFlagCreate,
    QueueFilters,
    ReportCreate,
    ReportModeratorResponse,
    ReportResponse,
    ReportStatus,
    ReportType,
)
from moderation_core.services import (
    action_service,
    audit_service,
    report_service,
    restriction_service,
    reversal_service,
)
from moderation_core.services.authorization_service import Actor, ensure_authorized

router = APIRouter(prefix="", tags=["moderation"])


# ==================== Reports ====================


@router.post("/reports", response_model=ReportResponse, status_code=status.HTTP_201_CREATED)
async def submit_report(
    data: ReportCreate,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ReportResponse:
    """Report a post, comment, track or user."""
    report = await report_service.submit_report(
        db,
        actor,
        report_type=data.report_type,
        target_id=data.target_id,
        reason=data.reason,
        description=data.description,
    )
    return ReportResponse.model_validate(report)


@router.post(
    "/flags",
    response_model=ReportModeratorResponse,
    status_code=status.HTTP_201_CREATED,
)
async def flag_content(
    data: ModeratorFlagCreate,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ReportModeratorResponse:
    """Moderator flag: goes straight to under_review."""
    report = await report_service.moderator_flag_content(
        db,
        actor,
        report_type=data.report_type,
        target_id=data.target_id,
        reason=data.reason,
        internal_notes=data.internal_notes,
        priority=data.priority,
    )
    return ReportModeratorResponse.model_validate(report)


@router.get("/queue", response_model=ModerationQueueResponse)
async def get_queue(
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)],
    report_status: Annotated[list[ReportStatus] | None, Query(alias="status")] = None,
    priority: int | None = Query(None, ge=1, le=5),
    moderator_flagged: bool | None = None,
    report_type: ReportType | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> ModerationQueueResponse:
    filters = QueueFilters(
        status=report_status,
        priority=priority,
        moderator_flagged=moderator_flagged,
        report_type=report_type,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )
    reports, total = await report_service.fetch_moderation_queue(db, actor, filters)
    return ModerationQueueResponse(
        reports=[ReportModeratorResponse.model_validate(r) for r in reports],
        total=total,
        limit=limit,
        offset=offset,
    )


# ==================== Actions ====================


@router.post("/actions", response_model=ActionResponse, status_code=status.HTTP_201_CREATED)
async def take_action(
    data: ActionCreate,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ActionResponse:
    action = await action_service.take_moderation_action(
        db,
        actor,
        report_id=data.report_id,
        action_type=data.action_type,
        target_user_id=data.target_user_id,
        reason=data.reason,
        duration_days=data.duration_days,
        internal_notes=data.internal_notes,
        notification_message=data.notification_message,
        restriction_type=data.restriction_type,
        target_type=data.target_type,
        target_id=data.target_id,
        send_notification=data.send_notification,
    )
    return ActionResponse.model_validate(action)


@router.post("/actions/{action_id}/reverse", response_model=ActionResponse)
async def reverse_action(
    action_id: UUID,
    data: ActionReverse,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ActionResponse:
    action = await reversal_service.reverse_action(db, actor, action_id, data.reason)
    return ActionResponse.model_validate(action)


@router.get("/logs", response_model=ModerationLogResponse)
async def get_logs(
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)],
    action_type: ActionType | None = None,
    moderator_id: UUID | None = None,
    target_user_id: UUID | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    search: str | None = Query(None, max_length=200),
    reversed_only: bool = False,
    non_reversed_only: bool = False,
    recently_reversed: bool = False,
    expired_only: bool = False,
    non_expired_only: bool = False,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
) -> ModerationLogResponse:
    filters = LogFilters(
        action_type=action_type,
        moderator_id=moderator_id,
        target_user_id=target_user_id,
        start_date=start_date,
        end_date=end_date,
        search=search,
        reversed_only=reversed_only,
        non_reversed_only=non_reversed_only,
        recently_reversed=recently_reversed,
        expired_only=expired_only,
        non_expired_only=non_expired_only,
    )
    actions, total = await audit_service.fetch_moderation_logs(db, actor, filters, limit, offset)
    return ModerationLogResponse(
        actions=[ActionResponse.model_validate(a) for a in actions],
        total=total,
        limit=limit,
        offset=offset,
    )


# ==================== Restrictions ====================


@router.post(
    "/restrictions",
    response_model=RestrictionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def apply_restriction(
    data: RestrictionCreate,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> RestrictionResponse:
    restriction = await action_service.apply_restriction(
        db,
        actor,
        user_id=data.user_id,
        restriction_type=data.restriction_type,
        reason=data.reason,
        duration_days=data.duration_days,
        related_action_id=data.related_action_id,
        send_notification=data.send_notification,
    )
    return RestrictionResponse.model_validate(restriction)


@router.post("/restrictions/{restriction_id}/remove", response_model=RestrictionResponse)
async def remove_restriction(
    restriction_id: UUID,
    data: RestrictionRemove,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> RestrictionResponse:
    restriction = await reversal_service.remove_user_restriction(
        db, actor, restriction_id, data.reason
    )
    return RestrictionResponse.model_validate(restriction)


@router.get("/users/{user_id}/restrictions", response_model=RestrictionListResponse)
async def get_user_restrictions(
    user_id: UUID,
    actor: Annotated[Actor, Depends(get_authenticated_actor)],
    db: Annotated[AsyncSession, Depends(get_db)],
    include_inactive: bool = False,
) -> RestrictionListResponse:
    """Own restrictions for everyone; anyone's for moderators and admins."""
    if user_id != actor.id:
        ensure_authorized(actor, ModerationOperation.view_logs)
    restrictions = await restriction_service.check_user_restrictions(
        db, user_id, include_inactive=include_inactive
    )
    return RestrictionListResponse(restrictions=restrictions)


@router.get("/users/{user_id}/can/{action}", response_model=CanPerformResponse)
async def can_user_perform(
    user_id: UUID,
    action: UserAction,
    actor: Annotated[Actor, Depends(get_authenticated_actor)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> CanPerformResponse:
    if user_id != actor.id:
        ensure_authorized(actor, ModerationOperation.view_logs)
    allowed = await restriction_service.can_user_perform_action(db, user_id, action)
    return CanPerformResponse(user_id=user_id, action=action, allowed=allowed)


@router.get("/users/{user_id}/suspension", response_model=SuspensionStatusResponse)
async def get_suspension_status(
    user_id: UUID,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SuspensionStatusResponse:
    ensure_authorized(actor, ModerationOperation.view_logs)
    return await restriction_service.get_user_suspension_status(db, user_id)


@router.get("/users/{user_id}/history", response_model=list[ActionResponse])
async def get_user_history(
    user_id: UUID,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)],
    limit: int = Query(50, ge=1, le=200),
) -> list[ActionResponse]:
    actions = await audit_service.get_user_moderation_history(db, actor, user_id, limit)
    return [ActionResponse.model_validate(a) for a in actions]
