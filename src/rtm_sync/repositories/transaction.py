"""Transaction repository.

Transaction rows are find-or-skip by txid, with a single block-hash backfill.
"""

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rtm_sync.models.transaction import Transaction, TransactionType


class TransactionRepository:
    """Repository for write-once Transaction rows."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get_by_txid(self, txid: str) -> Transaction | None:
        """Retrieve transaction by txid."""
        result = await self.session.execute(select(Transaction).where(Transaction.txid == txid))  # type: ignore[arg-type]
        return result.scalar_one_or_none()

    async def record(self, transaction: Transaction) -> tuple[Transaction, bool]:
        """Insert a transaction row unless its txid is already stored.

        An existing row is never rewritten, except that an empty ``block_hash``
        is filled in from the new record (rows written before the hash was
        known).

        Args:
            transaction: Candidate row

        Returns:
            Tuple of (stored row, created flag)
        """
        existing = await self.get_by_txid(transaction.txid)
        if existing is not None:
            if not existing.block_hash and transaction.block_hash:
                existing.block_hash = transaction.block_hash
                self.session.add(existing)
                await self.session.flush()
            return existing, False

        self.session.add(transaction)
        await self.session.flush()
        return transaction, True

    async def count_by_type(self, tx_type: TransactionType) -> int:
        """Number of stored rows of one classification."""
        result = await self.session.execute(
            select(func.count()).select_from(Transaction).where(Transaction.type == tx_type)  # type: ignore[arg-type]
        )
        return int(result.scalar_one())

    async def delete_from_height(self, height: int) -> int:
        """Delete transactions in blocks above ``height``."""
        result = await self.session.execute(
            delete(Transaction).where(Transaction.block_height > height)  # type: ignore[arg-type]
        )
        await self.session.flush()
        return result.rowcount  # type: ignore[attr-defined]
