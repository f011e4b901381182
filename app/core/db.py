from collections.abc import AsyncGenerator
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings


def _async_database_url(database_url: str) -> str:
    """Use asyncpg for Postgres. asyncpg does not accept psycopg params like sslmode/channel_binding.

    Other URLs pass through untouched; urlunparse would mangle `sqlite+aiosqlite:///:memory:`.
    """
    parsed = urlparse(database_url)
    if parsed.scheme not in ("postgresql", "postgresql+asyncpg"):
        return database_url
    scheme = "postgresql+asyncpg"
    query = parse_qs(parsed.query, keep_blank_values=True)
    query.pop("sslmode", None)
    query.pop("channel_binding", None)
    new_query = urlencode(query, doseq=True)
    return urlunparse((scheme, parsed.netloc, parsed.path, parsed.params, new_query, parsed.fragment))


async_database_url = _async_database_url(settings.database_url)
_is_postgres = async_database_url.startswith("postgresql+asyncpg")

engine = create_async_engine(
    async_database_url,
    echo=settings.env == "development",
    pool_pre_ping=True,
    # Managed Postgres requires SSL; asyncpg uses this instead of sslmode
    connect_args={"ssl": True} if _is_postgres else {},
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
