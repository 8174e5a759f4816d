import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./postlink_test.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from datetime import date

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from postlink.core.database import Base, get_db
from postlink.core.security import create_access_token
from postlink.main import app
from postlink.models.chat import Chat  # noqa: F401
from postlink.models.enums import OfferType, RequestStatus
from postlink.models.notification import Notification  # noqa: F401
from postlink.models.request import REQUEST_MODELS
from postlink.models.response import Response  # noqa: F401
from postlink.models.user import User

TEST_DB_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///./postlink_test.db")

TASHKENT = 1
SAMARKAND = 2
BUKHARA = 3


@pytest_asyncio.fixture
async def db():
    eng = create_async_engine(TEST_DB_URL, echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(eng, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await eng.dispose()


@pytest_asyncio.fixture
async def client(db):
    async def _override_db():
        yield db

    app.dependency_overrides[get_db] = _override_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def auth_headers(user: User) -> dict:
    token = create_access_token(user.id)
    return {"Authorization": f"Bearer {token}"}


async def make_user(db: AsyncSession, name: str, telegram_id: int | None = None, links_balance: int = 3) -> User:
    user = User(name=name, username=name.lower(), telegram_id=telegram_id, links_balance=links_balance)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def make_request(
    db: AsyncSession,
    kind: OfferType,
    user: User,
    status: RequestStatus = RequestStatus.OPEN,
    **overrides,
):
    """Insert a request row directly, without quota checks or matching."""
    fields = {
        "from_location_id": TASHKENT,
        "to_location_id": SAMARKAND,
        "from_date": date(2024, 1, 1),
        "to_date": date(2024, 1, 5),
        "size_type": "M",
    }
    fields.update(overrides)
    request = REQUEST_MODELS[kind](user_id=user.id, status=status, **fields)
    db.add(request)
    await db.commit()
    await db.refresh(request)
    return request


def request_data(**overrides) -> dict:
    data = {
        "from_location_id": TASHKENT,
        "to_location_id": SAMARKAND,
        "from_date": date(2024, 1, 1),
        "to_date": date(2024, 1, 5),
        "size_type": "M",
        "price": None,
        "currency": None,
        "description": None,
    }
    data.update(overrides)
    return data


@pytest_asyncio.fixture
async def sender_user(db: AsyncSession):
    return await make_user(db, "Sender", telegram_id=1001)


@pytest_asyncio.fixture
async def deliverer_user(db: AsyncSession):
    return await make_user(db, "Deliverer", telegram_id=1002)


@pytest_asyncio.fixture
async def second_deliverer(db: AsyncSession):
    return await make_user(db, "Courier", telegram_id=1003)


@pytest_asyncio.fixture
async def stranger(db: AsyncSession):
    return await make_user(db, "Stranger")
