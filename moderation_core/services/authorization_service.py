"""
Decides whether an actor may perform a moderation operation against a target.

The actor is always passed in explicitly; nothing here reads request state.
Rules are evaluated in order and the first match wins.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from moderation_core.core.exceptions import InsufficientPermissionsError
from moderation_core.schemas.moderation import ModerationOperation
from moderation_core.schemas.user import UserRole

security_logger = logging.getLogger("moderation_core.security")

STAFF_ROLES = frozenset({UserRole.moderator, UserRole.admin})

ADMIN_ONLY_OPERATIONS = frozenset(
    {
        ModerationOperation.user_banned,
        ModerationOperation.reverse_ban,
        ModerationOperation.manage_roles,
        ModerationOperation.run_expiration,
    }
)

# Operations a moderator may never aim at their own account. Reversing one's
# own earlier action is not in this set.
SELF_TARGET_DENIED_OPERATIONS = frozenset(
    {
        ModerationOperation.user_suspended,
        ModerationOperation.user_banned,
        ModerationOperation.restriction_applied,
        ModerationOperation.apply_restriction,
        ModerationOperation.remove_restriction,
        ModerationOperation.manage_roles,
    }
)


@dataclass(frozen=True)
class Actor:
    id: UUID
    role: UserRole

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.admin


@dataclass(frozen=True)
class AuthorizationDecision:
    allowed: bool
    reason: str | None = None


ALLOWED = AuthorizationDecision(allowed=True)


def authorize(
    actor_role: UserRole | str,
    actor_id: UUID,
    target_role: UserRole | str | None,
    target_id: UUID | None,
    operation: ModerationOperation,
) -> AuthorizationDecision:
    actor_role = UserRole(actor_role)
    if target_role is not None:
        target_role = UserRole(target_role)

    if operation is ModerationOperation.submit_report:
        return ALLOWED

    if actor_role not in STAFF_ROLES:
        return AuthorizationDecision(False, "Moderator or admin role required")

    if target_role is UserRole.admin and actor_role is not UserRole.admin:
        return AuthorizationDecision(False, "Only admins can act on admin accounts")

    if operation in ADMIN_ONLY_OPERATIONS and actor_role is not UserRole.admin:
        return AuthorizationDecision(False, "Only admins can perform this operation")

    if (
        target_id is not None
        and target_id == actor_id
        and operation in SELF_TARGET_DENIED_OPERATIONS
    ):
        return AuthorizationDecision(False, "You cannot perform this operation on your own account")

    return ALLOWED


def ensure_authorized(
    actor: Actor,
    operation: ModerationOperation,
    target_role: UserRole | str | None = None,
    target_id: UUID | None = None,
) -> None:
    """authorize(), raising INSUFFICIENT_PERMISSIONS and logging a security event on denial."""
    decision = authorize(actor.role, actor.id, target_role, target_id, operation)
    if not decision.allowed:
        security_logger.warning(
            "authorization_denied actor_id=%s actor_role=%s operation=%s target_id=%s reason=%s",
            actor.id,
            actor.role.value,
            operation.value,
            target_id,
            decision.reason,
        )
        raise InsufficientPermissionsError(message=decision.reason, operation=operation.value)
