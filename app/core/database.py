import logging
from contextlib import asynccontextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from app.core.config import settings
from app.core.exceptions import ConflictError, LifecycleError, TransactionFailure

logger = logging.getLogger(__name__)

engine_options = {"echo": settings.DEBUG, "pool_pre_ping": True}
if not settings.DATABASE_URL.startswith("sqlite"):
    engine_options.update(pool_size=10, max_overflow=20)

# Create async engine
engine = create_async_engine(settings.DATABASE_URL, **engine_options)

# Create async session factory
AsyncSessionLocal = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

# Base class for models
Base = declarative_base()


# Dependency for getting DB session
async def get_db() -> AsyncSession:
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def atomic(db: AsyncSession):
    """
    Run a block of writes as one unit of work.

    Commits when the block exits cleanly. On any failure the session is
    rolled back before the error propagates, so callers never observe a
    partially applied operation:

    - lifecycle errors raised inside the block are re-raised unchanged
    - IntegrityError (unique constraint lost to a concurrent writer) becomes ConflictError
    - any other SQLAlchemyError becomes TransactionFailure
    """
    try:
        yield db
        await db.commit()
    except LifecycleError:
        await db.rollback()
        raise
    except IntegrityError as e:
        await db.rollback()
        logger.warning(f"Integrity conflict, transaction rolled back: {e.orig}")
        raise ConflictError(
            "The value is already in use. Please try a different value.",
            reason="integrity_conflict"
        ) from e
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Storage failure, transaction rolled back: {e}")
        raise TransactionFailure() from e
    except Exception:
        await db.rollback()
        raise
