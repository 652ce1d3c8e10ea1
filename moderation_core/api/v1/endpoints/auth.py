import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from moderation_core.core.exceptions import InsufficientPermissionsError
from moderation_core.core.security import create_access_token, decode_access_token
from moderation_core.database import get_db
from moderation_core.schemas.user import Token, UserCreate, UserResponse
from moderation_core.services import restriction_service, user_service
from moderation_core.services.authorization_service import Actor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["auth"])

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


async def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> UserResponse:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_access_token(token)
    if payload is None:
        raise credentials_exception

    try:
        user_id = UUID(payload.sub)
    except ValueError:
        raise credentials_exception

    user = await user_service.get_user_by_id(db, user_id)
    if user is None:
        raise credentials_exception

    return UserResponse.model_validate(user)


async def get_authenticated_actor(
    current_user: Annotated[UserResponse, Depends(get_current_user)],
) -> Actor:
    return Actor(id=current_user.id, role=current_user.role)


async def get_current_actor(
    actor: Annotated[Actor, Depends(get_authenticated_actor)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Actor:
    """The authenticated caller as passed to the moderation services.

    Suspended accounts are rejected; the check reads the restriction store, so
    a lapsed suspension no longer blocks even before the expiration sweep.
    """
    suspension = await restriction_service.get_user_suspension_status(db, actor.id)
    if suspension.is_suspended:
        raise InsufficientPermissionsError("Account is suspended")
    return actor


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> UserResponse:
    user = await user_service.create_user(db, user_data)
    logger.info("User %s registered", user.id)
    return UserResponse.model_validate(user)


@router.post("/login", response_model=Token)
async def login(
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Token:
    user = await user_service.authenticate_user(db, form_data.username, form_data.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return Token(access_token=create_access_token(str(user.id)))


@router.get("/me", response_model=UserResponse)
async def get_me(
    current_user: Annotated[UserResponse, Depends(get_current_user)],
) -> UserResponse:
    return current_user
