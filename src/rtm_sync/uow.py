"""Unit of Work pattern for the sync daemon.

Provides transaction management with automatic commit/rollback and access to all repositories.
The ingestion loop opens one unit of work per block, which is what makes a block
commit all-or-nothing.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rtm_sync.repositories.asset import AssetRepository
from rtm_sync.repositories.asset_transfer import AssetTransferRepository
from rtm_sync.repositories.block import BlockRepository
from rtm_sync.repositories.future_output import FutureOutputRepository
from rtm_sync.repositories.ipfs_cache import IPFSCacheRepository
from rtm_sync.repositories.sync_state import SyncStateRepository
from rtm_sync.repositories.transaction import TransactionRepository

logger = structlog.get_logger()


class UnitOfWork:
    """Unit of Work pattern implementation.

    Manages database transactions and provides access to all repositories.
    Use as async context manager for automatic commit/rollback.

    Example:
        async with await uow_factory() as uow:
            asset = await uow.assets.get_by_asset_id(asset_id)
            asset.apply_mint(5, recipient)
            # Automatically commits on successful exit
            # Automatically rolls back on exception
    """

    def __init__(self, session: AsyncSession):
        """Initialize UnitOfWork with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

        self.sync_state = SyncStateRepository(session)
        self.blocks = BlockRepository(session)
        self.transactions = TransactionRepository(session)
        self.assets = AssetRepository(session)
        self.asset_transfers = AssetTransferRepository(session)
        self.future_outputs = FutureOutputRepository(session)
        self.ipfs_cache = IPFSCacheRepository(session)

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator[None]:
        """Nested transaction: on error only the work inside the block is undone."""
        async with self.session.begin_nested():
            yield

    async def __aenter__(self):
        """Enter async context manager.

        Returns:
            self: UnitOfWork instance with all repositories available
        """
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit async context manager with automatic commit/rollback.

        Returns:
            False: Always re-raise exceptions after rollback
        """
        try:
            if exc_type is None:
                await self.session.commit()
                logger.debug("transaction.committed")
            else:
                await self.session.rollback()
                logger.debug("transaction.rolled_back", exc_type=exc_type.__name__)
        finally:
            await self.session.close()

        return False


UnitOfWorkFactory = Callable[[], Awaitable[UnitOfWork]]


def create_uow_factory(session_factory: async_sessionmaker[AsyncSession]) -> UnitOfWorkFactory:
    """Create a factory function that produces UnitOfWork instances.

    Args:
        session_factory: SQLAlchemy async session factory

    Returns:
        Callable that creates UnitOfWork instances from new sessions

    Example:
        session_factory = setup_db_session(db_url)
        uow_factory = create_uow_factory(session_factory)

        async with await uow_factory() as uow:
            await uow.blocks.add(block)
    """

    async def _create_uow() -> UnitOfWork:
        """Create a new UnitOfWork instance with a new session."""
        session = session_factory()
        return UnitOfWork(session)

    return _create_uow
