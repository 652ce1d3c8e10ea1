import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from moderation_core.api.v1.endpoints.auth import get_current_actor
from moderation_core.database import get_db
from moderation_core.schemas.moderation import (
    ExpirationRunResponse,
    ModerationMetricsResponse,
    ModerationOperation,
)
from moderation_core.schemas.user import UserResponse, UserRoleUpdate
from moderation_core.services import expiration_service, metrics_service, user_service
from moderation_core.services.authorization_service import Actor, ensure_authorized

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["admin"])


# ==================== Jobs ====================


@router.post("/jobs/expire", response_model=ExpirationRunResponse)
async def run_expiration(
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ExpirationRunResponse:
    """Run the expiration sweep now instead of waiting for the worker."""
    ensure_authorized(actor, ModerationOperation.run_expiration)
    restrictions = await expiration_service.expire_restrictions(db)
    suspensions = await expiration_service.expire_suspensions(db)
    logger.info(
        "Manual expiration sweep by %s: %d restrictions, %d suspensions",
        actor.id,
        restrictions,
        suspensions,
    )
    return ExpirationRunResponse(
        restrictions_expired=restrictions,
        suspensions_expired=suspensions,
    )


# ==================== Metrics ====================


@router.get("/metrics", response_model=ModerationMetricsResponse)
async def get_metrics(
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ModerationMetricsResponse:
    return await metrics_service.get_moderation_metrics(db, actor)


# ==================== User Management ====================


@router.put("/users/{user_id}/role", response_model=UserResponse)
async def update_user_role(
    user_id: UUID,
    data: UserRoleUpdate,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> UserResponse:
    """Promote or demote a user (admin only)."""
    user = await user_service.update_role(db, actor, user_id, data.role)
    return UserResponse.model_validate(user)
