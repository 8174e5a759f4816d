import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from postlink.core.config import settings
from postlink.core.exceptions import ConflictError, StoreError

logger = logging.getLogger(__name__)

engine = create_async_engine(settings.DATABASE_URL, pool_pre_ping=True)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncIterator[AsyncSession]:
    async with async_session() as session:
        yield session


@asynccontextmanager
async def atomic(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Run a unit of work: commit on success, roll everything back on any error.

    Store failures are re-raised as StoreError so callers never see driver
    internals; unique-index violations mean a concurrent writer won the race.
    """
    try:
        yield db
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        logger.warning("Integrity conflict, transaction rolled back: %s", exc.orig)
        raise ConflictError() from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Store failure, transaction rolled back")
        raise StoreError() from exc
    except BaseException:
        await db.rollback()
        raise
