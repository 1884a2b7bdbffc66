"""
Pytest configuration and fixtures for tests.
Provides reusable test fixtures for database, users, and data setup.
"""
import itertools
from typing import AsyncGenerator

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from parley.main import fastapi_app
from parley.api.v1 import keys, messages
from parley.core.database import get_db
from parley.core.security import create_access_token
from parley.core.websocket import connection_manager
from parley.models.base import Base


# In-memory SQLite shared by every session of a test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

_user_seq = itertools.count(1)


@pytest.fixture(scope="function")
async def test_engine():
    """Create test database engine with foreign keys enforced."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine):
    """Session factory configured like the application's."""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory creating committed users with unique handles and friend codes."""
    from parley.models.user import User

    async def _make_user(username: str | None = None, **kwargs) -> User:
        n = next(_user_seq)
        username = username or f"user{n}"
        user = User(
            email=kwargs.pop("email", f"{username}@example.com"),
            username=username,
            display_name=kwargs.pop("display_name", username.title()),
            password_hash=kwargs.pop("password_hash", "not-a-real-hash"),
            friend_code=kwargs.pop("friend_code", f"{username[:12]}#{n:04d}"),
            **kwargs,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _make_user


@pytest.fixture
def give_identity_key(db_session: AsyncSession):
    """Factory storing an identity key so the user may join groups."""
    from parley.models.encryption import IdentityKey

    async def _give(*users) -> None:
        for user in users:
            db_session.add(IdentityKey(user_id=user.id, registration_id=1, public_key="aWRlbnRpdHk="))
        await db_session.commit()

    return _give


@pytest.fixture
async def alice(make_user):
    return await make_user("alice")


@pytest.fixture
async def bob(make_user):
    return await make_user("bob")


@pytest.fixture
async def carol(make_user):
    return await make_user("carol")


@pytest.fixture
async def direct_conversation(db_session: AsyncSession, alice, bob):
    """Direct conversation between alice and bob."""
    from parley.services.conversation_service import ConversationService

    conversation, _ = await ConversationService(db_session).get_or_create_conversation(alice.id, bob.id)
    return conversation


@pytest.fixture
async def group_conversation(db_session: AsyncSession, alice, bob, carol, give_identity_key):
    """Group owned by alice with bob and carol as members."""
    from parley.services.conversation_service import ConversationService

    await give_identity_key(alice, bob, carol)
    return await ConversationService(db_session).create_group(
        owner_id=alice.id,
        participant_ids=[bob.id, carol.id],
        title="Test Group",
    )


@pytest.fixture
def auth_headers_for():
    """Factory building Bearer headers that carry a real access token for a user."""

    def _headers(user) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _headers


@pytest.fixture(autouse=True)
def mock_websocket_manager(mocker):
    """Replace every fan-out method of the connection manager with an AsyncMock."""
    for name in (
        "broadcast_new_message",
        "broadcast_message_edited",
        "broadcast_message_deleted",
        "broadcast_read",
        "broadcast_presence",
        "broadcast_conversation_created",
        "broadcast_conversation_invite",
        "broadcast_participant_added",
        "broadcast_participant_removed",
        "broadcast_conversation_deleted",
    ):
        mocker.patch.object(connection_manager, name, mocker.AsyncMock())
    return connection_manager


@pytest.fixture(autouse=True)
def disable_rate_limits():
    """Rate limiter state outlives a single test; switch it off."""
    messages.limiter.enabled = False
    keys.limiter.enabled = False
    fastapi_app.state.limiter.enabled = False
    yield
    messages.limiter.enabled = True
    keys.limiter.enabled = True
    fastapi_app.state.limiter.enabled = True


@pytest.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client over the FastAPI app sharing the test session."""

    async def override_get_db():
        yield db_session

    fastapi_app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://test") as ac:
        yield ac

    fastapi_app.dependency_overrides.clear()
