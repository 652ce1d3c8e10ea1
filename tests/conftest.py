from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from moderation_core.core.security import create_access_token, hash_password
from moderation_core.database import Base, configure_sqlite_engine, get_db
from moderation_core.main import app
from moderation_core.models.user import User
from moderation_core.schemas.user import UserRole
from moderation_core.services.authorization_service import Actor

TEST_PASSWORD = "testpassword123"


@pytest_asyncio.fixture(scope="function")
async def session_maker(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    # A file database so that separate sessions really are separate connections
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    configure_sqlite_engine(test_engine)

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


async def create_user(
    db: AsyncSession,
    email: str,
    role: UserRole = UserRole.user,
    display_name: str | None = None,
) -> User:
    """Insert a user with the given role and commit."""
    user = User(
        email=email,
        display_name=display_name,
        password_hash=hash_password(TEST_PASSWORD),
        role=role.value,
        status="active",
    )
    db.add(user)
    await db.commit()
    return user


def actor_for(user: User) -> Actor:
    return Actor(id=user.id, role=UserRole(user.role))


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(str(user.id))}"}


@pytest_asyncio.fixture
async def regular_user(db_session: AsyncSession) -> User:
    return await create_user(db_session, "user@example.com", display_name="Regular User")


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    return await create_user(db_session, "other@example.com", display_name="Other User")


@pytest_asyncio.fixture
async def moderator(db_session: AsyncSession) -> User:
    return await create_user(db_session, "mod@example.com", UserRole.moderator, "Mod One")


@pytest_asyncio.fixture
async def second_moderator(db_session: AsyncSession) -> User:
    return await create_user(db_session, "mod2@example.com", UserRole.moderator, "Mod Two")


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> User:
    return await create_user(db_session, "admin@example.com", UserRole.admin, "Admin")


@pytest.fixture
def registered_user_data() -> dict:
    return {
        "email": "test@example.com",
        "password": TEST_PASSWORD,
        "display_name": "Test User",
    }


@pytest_asyncio.fixture
async def registered_user(client: AsyncClient, registered_user_data: dict) -> dict:
    response = await client.post("/api/v1/auth/register", json=registered_user_data)
    return {**registered_user_data, "response": response.json()}


@pytest_asyncio.fixture
async def auth_token(client: AsyncClient, registered_user: dict) -> str:
    response = await client.post(
        "/api/v1/auth/login",
        data={
            "username": registered_user["email"],
            "password": registered_user["password"],
        },
    )
    return response.json()["access_token"]
