# backend/tenantauth/db/session.py
import logging
from collections.abc import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from tenantauth.core.config import settings

logger = logging.getLogger(__name__)

# --- Asynchronous Engine and Session Setup ---
async_engine: AsyncEngine | None = None
AsyncSessionLocal: async_sessionmaker[AsyncSession] | None = None


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        class_=AsyncSession,
    )


def _initialize_db_resources_sync() -> None:
    """
    Create the async engine and session maker.
    Called by the lifespan manager.
    """
    global async_engine, AsyncSessionLocal

    if async_engine is not None:
        logger.info("Asynchronous database resources already initialized.")
        return

    logger.info("Initializing asynchronous database engine and session maker.")
    try:
        db_url_str = str(settings.ASYNC_SQLALCHEMY_DATABASE_URL)
        current_engine = create_async_engine(
            db_url_str,
            pool_pre_ping=True,
            echo=settings.DB_ECHO,
        )
        async_engine = current_engine
        AsyncSessionLocal = build_session_factory(current_engine)
        logger.info(
            f"Asynchronous database engine ({db_url_str.split('@')[0]}@...) configured successfully."
        )
    except Exception as e:
        logger.critical(
            f"CRITICAL: Failed to initialize asynchronous database engine: {e}", exc_info=True
        )
        async_engine = None
        AsyncSessionLocal = None
        raise RuntimeError(f"Failed to initialize asynchronous database engine: {e}") from e


async def _dispose_db_resources_async() -> None:
    global async_engine, AsyncSessionLocal
    if async_engine:
        logger.info("Disposing asynchronous database engine.")
        await async_engine.dispose()
        async_engine = None
        AsyncSessionLocal = None
    else:
        logger.info("No asynchronous database engine to dispose.")


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if AsyncSessionLocal is None:
        raise RuntimeError(
            "AsyncSessionLocal is not initialized. Ensure DB resources are initialized via lifespan."
        )
    return AsyncSessionLocal


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    async with get_session_factory()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            logger.error("Async DB session rolled back due to an exception.", exc_info=True)
            raise


# --- FastAPI Lifespan Event Handler Integration ---
async def lifespan_db_manager(event_type: str) -> None:
    if event_type == "startup":
        logger.info("Lifespan: startup - initializing DB resources.")
        _initialize_db_resources_sync()

        if async_engine is None:
            raise RuntimeError("Database engine was not created during startup.")
        try:
            async with async_engine.connect() as connection:
                await connection.execute(text("SELECT 1"))
            logger.info("Lifespan: database connection successful on startup.")
        except Exception as e:
            logger.error(f"Lifespan: database connection test failed: {e}", exc_info=True)
            await _dispose_db_resources_async()
            raise RuntimeError(f"Database connection test failed on startup: {e}") from e

    elif event_type == "shutdown":
        logger.info("Lifespan: shutdown - disposing DB resources.")
        await _dispose_db_resources_async()
