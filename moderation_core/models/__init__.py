from moderation_core.models.content_tombstone import ContentTombstone
from moderation_core.models.moderation_action import ModerationAction
from moderation_core.models.notification import NotificationEvent
from moderation_core.models.rate_limit import RateLimitBucket, RateLimitHit
from moderation_core.models.report import Report
from moderation_core.models.user import User
from moderation_core.models.user_restriction import UserRestriction

__all__ = [
    "User",
    "Report",
    "ModerationAction",
    "UserRestriction",
    "RateLimitBucket",
    "RateLimitHit",
    "NotificationEvent",
    "ContentTombstone",
]
