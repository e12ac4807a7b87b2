"""Block repository."""

from sqlalchemy import delete, exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rtm_sync.models.block import Block


class BlockRepository:
    """Repository for write-once Block rows."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, block: Block) -> Block:
        """Persist a new block row."""
        self.session.add(block)
        await self.session.flush()
        return block

    async def exists(self, height: int) -> bool:
        """Check whether a height has already been ingested.

        Used by the ingestion loop to skip heights committed before a restart.
        """
        result = await self.session.execute(select(exists().where(Block.height == height)))  # type: ignore[arg-type]
        return bool(result.scalar())

    async def get_by_height(self, height: int) -> Block | None:
        """Retrieve block by height."""
        result = await self.session.execute(select(Block).where(Block.height == height))  # type: ignore[arg-type]
        return result.scalar_one_or_none()

    async def get_latest_height(self) -> int | None:
        """Highest stored height, or None when no block is stored."""
        result = await self.session.execute(select(func.max(Block.height)))
        return result.scalar_one_or_none()

    async def count(self) -> int:
        """Number of stored blocks."""
        result = await self.session.execute(select(func.count()).select_from(Block))
        return int(result.scalar_one())

    async def delete_from_height(self, height: int) -> int:
        """Delete blocks above ``height`` (operator resync / reorg purge).

        Returns:
            Number of deleted rows
        """
        result = await self.session.execute(delete(Block).where(Block.height > height))  # type: ignore[arg-type]
        await self.session.flush()
        return result.rowcount  # type: ignore[attr-defined]
