from moderation_core.schemas.user import (
    Token,
    TokenPayload,
    UserCreate,
    UserLogin,
    UserResponse,
    UserRole,
    UserStatus,
)
from moderation_core.schemas.report import (
    ModeratorFlagCreate,
    ModerationQueueResponse,
    QueueFilters,
    ReportCreate,
    ReportModeratorResponse,
    ReportReason,
    ReportResponse,
    ReportStatus,
    ReportType,
)
from moderation_core.schemas.moderation import (
    ActionCreate,
    ActionResponse,
    ActionReverse,
    ActionType,
    ModerationOperation,
    RestrictionCreate,
    RestrictionResponse,
    RestrictionType,
    UserAction,
)

__all__ = [
    "UserCreate",
    "UserLogin",
    "UserResponse",
    "UserRole",
    "UserStatus",
    "Token",
    "TokenPayload",
    "ReportReason",
    "ReportStatus",
    "ReportType",
    "ReportCreate",
    "ReportResponse",
    "ReportModeratorResponse",
    "ModeratorFlagCreate",
    "QueueFilters",
    "ModerationQueueResponse",
    "ActionType",
    "ActionCreate",
    "ActionReverse",
    "ActionResponse",
    "ModerationOperation",
    "RestrictionType",
    "RestrictionCreate",
    "RestrictionResponse",
    "UserAction",
]
