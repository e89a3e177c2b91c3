from contextlib import asynccontextmanager
from typing import Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from arena.utils.clock import Clock
from arena.utils.exceptions import StoreFailureError
from arena.utils.logger import setup_logger


class BaseOperations:
    """Shared wiring for operations classes: database, clock and logger"""

    def __init__(self, database, clock: Optional[Clock] = None):
        """Initialize with database instance and an optional time source"""
        self.db = database
        self.clock = clock or Clock()
        self.logger = setup_logger(self.__class__.__module__)

    @asynccontextmanager
    async def _get_session_context(self, session: Optional[AsyncSession] = None,
                                   operation: str = "operation"):
        """
        Provides a session context. Uses the provided session if available,
        otherwise opens a transaction that commits on success.

        Store errors from a transaction we own are surfaced as
        StoreFailureError once the rollback has completed.
        """
        if session:
            # If a session is provided, we do not manage its lifecycle
            yield session
            return

        try:
            async with self.db.transaction() as new_session:
                yield new_session
        except SQLAlchemyError as e:
            self.logger.error(f"Store failure during {operation}: {e}")
            raise StoreFailureError(operation, str(e)) from e
