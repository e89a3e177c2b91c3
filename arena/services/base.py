"""
Base service class for the competition engine.

Provides async database session management and retry logic for the
read/aggregate services. Write paths never go through the retry helper:
validation errors are caller problems and store failures surface once.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Callable, Any
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from arena.config import Config
from arena.utils.exceptions import StoreFailureError

logger = logging.getLogger(__name__)

class BaseService:
    """Base class for all services with async database session management."""

    def __init__(self, session_factory):
        """
        Initialize base service with session factory.

        Args:
            session_factory: Async session factory from Database class
        """
        self.session_factory = session_factory

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a transactional scope for async database operations."""
        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except BaseException:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def execute_with_retry(self, func: Callable, operation: str = None, max_retries: int = None) -> Any:
        """
        Execute a read with automatic retry on store errors.

        Raises:
            StoreFailureError: The last attempt still failed
        """
        operation = operation or func.__name__
        max_retries = max_retries or Config.STORE_RETRY_ATTEMPTS
        for attempt in range(max_retries):
            try:
                return await func()
            except SQLAlchemyError as e:
                if attempt == max_retries - 1:
                    logger.error(f"Store failure during {operation} after {max_retries} attempts: {e}")
                    raise StoreFailureError(operation, str(e)) from e
                logger.warning(f"Retry attempt {attempt + 1} for {operation}: {e}")
                await asyncio.sleep(0.1 * (2 ** attempt))  # Exponential backoff
