import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

logger = logging.getLogger("orders.db")

Base = declarative_base()


def make_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    return create_async_engine(
        database_url,
        echo=echo,
        future=True
    )


def make_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def ensure_database(engine: AsyncEngine) -> None:
    """
    Создаёт базу данных, если её ещё нет.

    Подключаемся к служебной базе `postgres` в режиме AUTOCOMMIT,
    потому что CREATE DATABASE нельзя выполнить внутри транзакции.
    """
    if engine.dialect.name != "postgresql":
        return

    db_name = engine.url.database
    server_engine = create_async_engine(
        engine.url.set(database="postgres"),
        isolation_level="AUTOCOMMIT",
    )
    try:
        async with server_engine.connect() as conn:
            result = await conn.execute(
                text("SELECT 1 FROM pg_database WHERE datname = :name"),
                {"name": db_name},
            )
            if result.scalar() is None:
                quoted = server_engine.dialect.identifier_preparer.quote(db_name)
                await conn.execute(text(f"CREATE DATABASE {quoted}"))
                logger.info("[Orders] Database %s created", db_name)
            else:
                logger.info("[Orders] Database %s already exists", db_name)
    finally:
        await server_engine.dispose()
