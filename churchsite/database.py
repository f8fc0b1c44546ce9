from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from churchsite.config import settings
import logging

logger = logging.getLogger(__name__)

DATABASE_URL = settings.database_url

# Environment-based configurations
if DATABASE_URL.startswith("sqlite"):
    engine = create_async_engine(DATABASE_URL, echo=settings.debug)
elif settings.environment == "production":
    engine = create_async_engine(
        DATABASE_URL,
        pool_size=20,
        max_overflow=50,
        pool_timeout=60,
        pool_recycle=1800,
        pool_pre_ping=True,
    )
else:
    engine = create_async_engine(
        DATABASE_URL,
        echo=settings.debug,
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,
    )

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    autoflush=False,
    expire_on_commit=False,
)

Base = declarative_base()


async def get_db():
    logger.debug("Opening database session...")
    async with AsyncSessionLocal() as db:
        try:
            yield db
        except Exception as e:
            logger.error(f"Database session error: {e}")
            await db.rollback()
            raise
        finally:
            try:
                await db.close()
                logger.debug("Database session closed.")
            except Exception as close_error:
                logger.warning(f"Error closing database session: {close_error}")
