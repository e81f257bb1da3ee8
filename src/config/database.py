import contextlib
from collections.abc import AsyncIterator

from alembic import command, config
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from src.config.settings import settings
from src.guests.errors import StoreConflictError, StoreError


def create_engine(url: str, timeout: float | None = None) -> AsyncEngine:
    url = str(url)
    timeout = settings.db_timeout_seconds if timeout is None else timeout
    if "sqlite" in url:
        # busy timeout; a writer waits this long for a concurrent writer
        return create_async_engine(
            url,
            echo=settings.LOG_DB,
            future=True,
            connect_args={"timeout": timeout},
        )
    return create_async_engine(
        url,
        echo=settings.LOG_DB,
        future=True,  # use the sqlalchemy 2.0 classes
        connect_args={"command_timeout": timeout},
        pool_timeout=timeout,
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


def run_upgrade(connection, cfg):
    cfg.attributes["connection"] = connection
    command.upgrade(cfg, "head")


async def upgrade_database(engine: AsyncEngine, ini_path: str = "alembic.ini") -> None:
    async with engine.begin() as conn:
        await conn.run_sync(run_upgrade, config.Config(ini_path))


@contextlib.asynccontextmanager
async def async_session_manager(
    session_maker: async_sessionmaker[AsyncSession], auto_commit=True
) -> AsyncIterator[AsyncSession]:
    """Open a session, commit it on success and roll it back on any error.

    Store failures leave this block as ``StoreError``; unique constraint
    violations as ``StoreConflictError`` so callers can resolve races.
    """
    async with session_maker() as session:
        try:
            yield session
            if auto_commit:
                await session.commit()
        except IntegrityError as e:
            await session.rollback()
            raise StoreConflictError(str(e.orig)) from e
        except (SQLAlchemyError, TimeoutError) as e:
            await session.rollback()
            raise StoreError(str(e)) from e
        except Exception as e:
            await session.rollback()
            raise e
