from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class ReportReason(str, Enum):
    self_harm = "self_harm"
    hate_speech = "hate_speech"
    harassment = "harassment"
    inappropriate_content = "inappropriate_content"
    spam = "spam"
    copyright_violation = "copyright_violation"
    impersonation = "impersonation"
    other = "other"


class ReportStatus(str, Enum):
    pending = "pending"
    under_review = "under_review"
    resolved = "resolved"
    dismissed = "dismissed"


OPEN_REPORT_STATUSES = (ReportStatus.pending, ReportStatus.under_review)
TERMINAL_REPORT_STATUSES = (ReportStatus.resolved, ReportStatus.dismissed)


class ReportType(str, Enum):
    post = "post"
    comment = "comment"
    track = "track"
    user = "user"


# User-facing schemas
class ReportCreate(BaseModel):
    report_type: ReportType
    target_id: UUID
    reason: ReportReason
    description: str | None = Field(None, max_length=1000)


class ReportResponse(BaseModel):
    id: UUID
    report_type: ReportType
    target_id: UUID
    reason: str
    description: str | None
    status: ReportStatus
    priority: int
    created_at: datetime

    model_config = {"from_attributes": True}


# Moderator schemas
class ModeratorFlagCreate(BaseModel):
    report_type: ReportType
    target_id: UUID
    reason: ReportReason
    internal_notes: str = Field(..., min_length=1, max_length=5000)
    priority: int | None = Field(None, ge=1, le=5)


class ReportModeratorResponse(BaseModel):
    id: UUID
    reporter_id: UUID | None
    reported_user_id: UUID | None
    report_type: ReportType
    target_id: UUID
    reason: str
    description: str | None
    status: ReportStatus
    priority: int
    moderator_flagged: bool
    reviewed_by: UUID | None
    reviewed_at: datetime | None
    resolution_notes: str | None
    action_taken: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class QueueFilters(BaseModel):
    status: list[ReportStatus] | None = None
    priority: int | None = Field(None, ge=1, le=5)
    moderator_flagged: bool | None = None
    report_type: ReportType | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    limit: int = Field(50, ge=1, le=200)
    offset: int = Field(0, ge=0)


class ModerationQueueResponse(BaseModel):
    reports: list[ReportModeratorResponse]
    total: int
    limit: int
    offset: int
