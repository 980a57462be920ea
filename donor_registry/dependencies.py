from typing import AsyncGenerator

from fastapi import HTTPException, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from donor_registry.config import Settings
from donor_registry.utils.logging_config import get_logger

logger = get_logger(__name__)


def get_app_settings(request: Request) -> Settings:
    """Settings the running application was built with."""
    return request.app.state.settings


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database sessions.
    Commits on success, rolls back on any error and always closes.
    """
    session: AsyncSession = request.app.state.session_factory()
    logger.debug("Database session created")
    try:
        yield session

        if session.in_transaction():
            await session.commit()
            logger.debug("Database transaction committed")

    except HTTPException:
        if session.in_transaction():
            await session.rollback()
            logger.debug("Database transaction rolled back due to HTTPException")
        raise

    except SQLAlchemyError as e:
        logger.error(f"Database error in get_db: {type(e).__name__}: {e}")
        if session.in_transaction():
            await session.rollback()
        raise

    except Exception:
        if session.in_transaction():
            await session.rollback()
        raise

    finally:
        await session.close()
        logger.debug("Database session closed")
