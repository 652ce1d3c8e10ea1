import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from moderation_core.core.exceptions import NotFoundError, ValidationError
from moderation_core.core.security import hash_password, verify_password
from moderation_core.database import atomic
from moderation_core.models.user import User
from moderation_core.schemas.moderation import ModerationOperation
from moderation_core.schemas.user import UserCreate, UserRole
from moderation_core.services.authorization_service import Actor, ensure_authorized

logger = logging.getLogger(__name__)


async def get_user_by_id(db: AsyncSession, user_id: UUID) -> User | None:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def get_user_or_404(db: AsyncSession, user_id: UUID, for_update: bool = False) -> User:
    query = select(User).where(User.id == user_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    user = (await db.execute(query)).scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found", resource="user")
    return user


async def create_user(
    db: AsyncSession,
    data: UserCreate,
    role: UserRole = UserRole.user,
) -> User:
    async with atomic(db):
        if await get_user_by_email(db, data.email) is not None:
            raise ValidationError("Email already registered", field="email")
        user = User(
            email=data.email.lower(),
            display_name=data.display_name,
            password_hash=hash_password(data.password),
            role=role.value,
            status="active",
        )
        db.add(user)
    return user


async def authenticate_user(db: AsyncSession, email: str, password: str) -> User | None:
    user = await get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        return None
    return user


async def update_role(
    db: AsyncSession,
    actor: Actor,
    user_id: UUID,
    role: UserRole,
) -> User:
    async with atomic(db):
        user = await get_user_or_404(db, user_id, for_update=True)
        ensure_authorized(actor, ModerationOperation.manage_roles, user.role, user.id)
        previous = user.role
        user.role = role.value
    logger.info("Role of user %s changed from %s to %s by %s", user_id, previous, role.value, actor.id)
    return user
