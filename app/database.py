import re
from sqlalchemy import BigInteger, Integer
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from app.config import settings


def normalize_database_url(url: str) -> str:
    """
    Point plain postgres URLs at the asyncpg driver.

    Hosted databases hand out ``postgresql://...?sslmode=require`` URLs, which
    asyncpg does not understand; SSL is configured through DATABASE_SSL instead.
    """
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        url = re.sub(r'[?&]sslmode=[^&]*', '', url)
    return url


db_url = normalize_database_url(settings.DATABASE_URL)

engine = create_async_engine(
    db_url,
    echo=False,
    connect_args={"ssl": True} if settings.DATABASE_SSL else {},
)

# Create base class for models
Base = declarative_base()

# 64-bit identifiers; SQLite only autoincrements INTEGER primary keys
BigIntId = BigInteger().with_variant(Integer, "sqlite")

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    expire_on_commit=False,
    class_=AsyncSession,
)

# Dependency to get DB session
async def get_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
