import ssl
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings


def build_connect_args(ssl_mode: str) -> dict:
    """asyncpg connect args for the configured SSL mode (disable, require or verify)."""
    if ssl_mode == "disable":
        return {}
    ssl_ctx = ssl.create_default_context()
    if ssl_mode == "require":
        # Managed poolers terminate TLS with certificates we cannot pin
        ssl_ctx.check_hostname = False
        ssl_ctx.verify_mode = ssl.CERT_NONE
    return {"ssl": ssl_ctx}


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.APP_DEBUG,
    pool_size=settings.DATABASE_POOL_SIZE,
    max_overflow=settings.DATABASE_MAX_OVERFLOW,
    connect_args=build_connect_args(settings.DATABASE_SSL_MODE),
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session. Routers commit; anything left uncommitted is rolled back."""
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
