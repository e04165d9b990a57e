import logging
from collections.abc import AsyncGenerator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.engine import async_session
from src.exceptions import PersistenceException

logger = logging.getLogger(__name__)


async def commit_session(session: AsyncSession, what: str = "changes") -> None:
    """Commit now, turning a store failure into ``PersistenceException``."""
    try:
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("Commit failed while saving %s", what)
        raise PersistenceException(f"Could not save {what}") from exc


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields a database session.

    Services commit their own writes with ``commit_session`` before the
    handler returns, so a failed commit still reaches the caller. Anything
    left uncommitted when the request ends is rolled back.
    """
    async with async_session() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
