from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from moderation_core.schemas.report import ReportType


class ActionType(str, Enum):
    content_removed = "content_removed"
    content_approved = "content_approved"
    user_warned = "user_warned"
    user_suspended = "user_suspended"
    user_banned = "user_banned"
    restriction_applied = "restriction_applied"


class RestrictionType(str, Enum):
    posting_disabled = "posting_disabled"
    commenting_disabled = "commenting_disabled"
    upload_disabled = "upload_disabled"
    suspended = "suspended"


class UserAction(str, Enum):
    """Capabilities a restriction can take away"""

    post = "post"
    comment = "comment"
    upload = "upload"


class ModerationOperation(str, Enum):
    """Everything the authorization guard can be asked about"""

    submit_report = "submit_report"
    flag_content = "flag_content"
    view_queue = "view_queue"
    view_logs = "view_logs"
    view_metrics = "view_metrics"
    content_removed = "content_removed"
    content_approved = "content_approved"
    user_warned = "user_warned"
    user_suspended = "user_suspended"
    user_banned = "user_banned"
    restriction_applied = "restriction_applied"
    apply_restriction = "apply_restriction"
    remove_restriction = "remove_restriction"
    reverse_action = "reverse_action"
    reverse_ban = "reverse_ban"
    run_expiration = "run_expiration"
    manage_roles = "manage_roles"


# Actions
class ActionCreate(BaseModel):
    report_id: UUID
    action_type: ActionType
    target_user_id: UUID
    reason: str = Field(..., min_length=1)
    duration_days: int | None = Field(None, ge=1, le=3650)
    internal_notes: str | None = None
    notification_message: str | None = None
    restriction_type: RestrictionType | None = None
    target_type: ReportType | None = None
    target_id: UUID | None = None
    send_notification: bool = True


class ActionReverse(BaseModel):
    reason: str = Field(..., min_length=1)


class ActionResponse(BaseModel):
    id: UUID
    moderator_id: UUID
    target_user_id: UUID
    action_type: ActionType
    target_type: str | None
    target_id: UUID | None
    reason: str
    duration_days: int | None
    expires_at: datetime | None
    related_report_id: UUID | None
    internal_notes: str | None
    notification_sent: bool
    notification_message: str | None
    created_at: datetime
    revoked_at: datetime | None
    revoked_by: UUID | None
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="action_metadata")

    model_config = {"from_attributes": True, "populate_by_name": True}


class LogFilters(BaseModel):
    action_type: ActionType | None = None
    moderator_id: UUID | None = None
    target_user_id: UUID | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    search: str | None = Field(None, max_length=200)
    reversed_only: bool = False
    non_reversed_only: bool = False
    recently_reversed: bool = False
    expired_only: bool = False
    non_expired_only: bool = False


class ModerationLogResponse(BaseModel):
    actions: list[ActionResponse]
    total: int
    limit: int
    offset: int


# Restrictions
class RestrictionCreate(BaseModel):
    user_id: UUID
    restriction_type: RestrictionType
    reason: str = Field(..., min_length=1)
    duration_days: int | None = Field(None, ge=1, le=3650)
    related_action_id: UUID | None = None
    send_notification: bool = True


class RestrictionRemove(BaseModel):
    reason: str = Field(..., min_length=1)


class RestrictionResponse(BaseModel):
    id: UUID
    user_id: UUID
    restriction_type: RestrictionType
    expires_at: datetime | None
    is_active: bool
    reason: str
    applied_by: UUID
    related_action_id: UUID | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class RestrictionListResponse(BaseModel):
    restrictions: list[RestrictionResponse]


class CanPerformResponse(BaseModel):
    user_id: UUID
    action: UserAction
    allowed: bool


class SuspensionStatusResponse(BaseModel):
    user_id: UUID
    is_suspended: bool
    is_permanent: bool = False
    expires_at: datetime | None = None
    reason: str | None = None
    restriction_id: UUID | None = None


# Jobs & metrics
class ExpirationRunResponse(BaseModel):
    restrictions_expired: int
    suspensions_expired: int


class ModerationMetricsResponse(BaseModel):
    reports_by_status: dict[str, int]
    open_reports: int
    moderator_flagged_open: int
    actions_by_type: dict[str, int]
    total_actions: int
    reversed_actions: int
    reversal_rate: float
    self_reversals: int
    active_restrictions: int
