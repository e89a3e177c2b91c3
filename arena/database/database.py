from typing import Optional
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from contextlib import asynccontextmanager

from arena.config import Config
from arena.database.models import Base
from arena.utils.logger import setup_logger


def _configure_sqlite_connection(dbapi_connection, connection_record):
    """Enable ON DELETE CASCADE and hand transaction control to SQLAlchemy"""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute(f"PRAGMA busy_timeout={Config.SQLITE_BUSY_TIMEOUT_MS}")
    cursor.close()
    # The driver would otherwise defer BEGIN until the first DML statement,
    # which breaks SAVEPOINT and lets reads escape the transaction
    dbapi_connection.isolation_level = None


def _begin_sqlite_transaction(conn):
    # Reserve the write lock up front so concurrent writers wait on the busy
    # timeout; a deferred BEGIN fails its lock upgrade immediately
    conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """
    Owner of the engine and session factory.

    There is no module-level handle: callers construct a Database, pass it to
    the operations and services that need it, and close it when done. Every
    unit of work acquires its own session through get_session() or
    transaction(), both of which release the session on every exit path.
    """

    def __init__(self, database_url: Optional[str] = None, echo: Optional[bool] = None):
        self.logger = setup_logger(__name__)
        self.database_url = Config.get_async_database_url(database_url)
        self.echo = Config.DEBUG if echo is None else echo
        self.engine = None
        self.async_session = None

    @property
    def session_factory(self) -> async_sessionmaker:
        if self.async_session is None:
            raise RuntimeError("Database.initialize() must be awaited before use")
        return self.async_session

    async def initialize(self):
        """Initialize the database connection and create tables"""
        self.logger.info("Initializing database...")

        self.engine = create_async_engine(
            self.database_url,
            echo=self.echo,
            future=True
        )

        if self.engine.dialect.name == 'sqlite':
            event.listen(self.engine.sync_engine, "connect", _configure_sqlite_connection)
            event.listen(self.engine.sync_engine, "begin", _begin_sqlite_transaction)

        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        # Create all tables
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self.logger.info("Database initialized successfully")

    @asynccontextmanager
    async def get_session(self):
        """Get a database session for reads or caller-managed commits"""
        async with self.session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    @asynccontextmanager
    async def transaction(self):
        """
        Create a transaction boundary for atomic operations.

        All operations within the context will be committed together on success,
        or rolled back together on failure. Cancellation of the awaiting task is
        an exception like any other and also rolls back.

        Usage:
            async with db.transaction() as session:
                await PhaseRepository(session).add(phase)
                await CaptainVoteRepository(session).delete_for_team(team_id)
                # All operations commit together here
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except BaseException:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def close(self):
        """Close the database connection"""
        if self.engine:
            await self.engine.dispose()
            self.logger.info("Database connection closed")
