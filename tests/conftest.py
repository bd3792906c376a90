"""Test configuration and fixtures."""
from typing import List

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import undefer

from rbac_api.core.exceptions import EmailDeliveryError
from rbac_api.core.hashing import secret_hasher
from rbac_api.core.tokens import TokenClass, token_issuer
from rbac_api.database import engine as db_engine
from rbac_api.main import app
from rbac_api.models.base import Base
from rbac_api.models.user import SECRET_FIELDS, Role, User
from rbac_api.services.email import EmailMessage, EmailService, get_email_service
from rbac_api.services.users import UserStore

TEST_PASSWORD = "testpassword123"


class RecordingMailer(EmailService):
    """Email service that keeps messages in memory and can be told to fail."""

    def __init__(self):
        super().__init__(backend="console")
        self.sent: List[EmailMessage] = []
        self.fail = False

    async def send(self, message: EmailMessage) -> None:
        if self.fail:
            raise EmailDeliveryError()
        self.sent.append(message)

    def last_link_token(self) -> str:
        """Token at the end of the link in the most recent message."""
        return self.sent[-1].body.rstrip().rsplit("/", 1)[-1]


@pytest_asyncio.fixture
async def async_engine(tmp_path):
    """Create async engine for tests."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine):
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest_asyncio.fixture
async def client(session_factory, mailer, monkeypatch):
    """Create test client on the test database and a recording mailer.

    Requests go through the real ``get_db`` dependency, so commit and
    rollback behave as in production.
    """
    monkeypatch.setattr(db_engine, "_session_factory", session_factory)
    app.dependency_overrides[get_email_service] = lambda: mailer

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session_factory):
    """Insert a user directly through the store and return it."""

    async def _make_user(
        email: str,
        password: str = TEST_PASSWORD,
        role: Role = Role.USER,
        **fields,
    ) -> User:
        async with session_factory() as session:
            return await UserStore(session).create(
                email=email,
                hashed_password=secret_hasher.hash(password),
                role=role.value,
                **fields,
            )

    return _make_user


@pytest.fixture
def load_user(session_factory):
    """Read a user back, including secret columns and inactive rows."""

    async def _load_user(user_id: str) -> User:
        async with session_factory() as session:
            stmt = select(User).where(User.id == user_id).options(
                *(undefer(getattr(User, name)) for name in SECRET_FIELDS)
            )
            return await session.scalar(stmt)

    return _load_user


@pytest.fixture
def auth_headers_for():
    """Bearer header for a freshly issued access token."""

    def _headers(user: User) -> dict:
        token = token_issuer.issue(user.id, TokenClass.ACCESS)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest_asyncio.fixture
async def test_user(make_user):
    return await make_user("test@example.com", first_name="Test", last_name="User")


@pytest.fixture
def auth_headers(test_user, auth_headers_for):
    return auth_headers_for(test_user)



@pytest.fixture
def login(client):
    """POST credentials to the login endpoint."""

    async def _login(email: str, password: str = TEST_PASSWORD):
        return await client.post("/api/v1/auth/login", json={"email": email, "password": password})

    return _login
