"""AssetTransfer repository.

Provides the idempotent upsert that makes block replay safe.
"""

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rtm_sync.models.asset_transfer import AssetTransfer, TransferType


class AssetTransferRepository:
    """Repository for the append-only mint/transfer ledger."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get(self, txid: str, asset_name: str, to_address: str) -> AssetTransfer | None:
        """Retrieve the ledger row identified by (txid, asset_name, to_address)."""
        result = await self.session.execute(
            select(AssetTransfer).where(
                AssetTransfer.txid == txid,  # type: ignore[arg-type]
                AssetTransfer.asset_name == asset_name,  # type: ignore[arg-type]
                AssetTransfer.to_address == to_address,  # type: ignore[arg-type]
            )
        )
        return result.scalar_one_or_none()

    async def upsert(self, transfer: AssetTransfer) -> tuple[AssetTransfer, bool]:
        """Insert the ledger row, or refresh the existing one with the same key.

        Callers use the created flag to decide whether counters on the Asset
        should move, so a replayed transaction changes nothing.

        Args:
            transfer: Candidate row

        Returns:
            Tuple of (stored row, created flag)
        """
        existing = await self.get(transfer.txid, transfer.asset_name, transfer.to_address)
        if existing is None:
            self.session.add(transfer)
            await self.session.flush()
            return transfer, True

        existing.asset_id = transfer.asset_id
        existing.from_address = transfer.from_address
        existing.amount = transfer.amount
        existing.type = transfer.type
        existing.block_height = transfer.block_height
        existing.timestamp = transfer.timestamp
        self.session.add(existing)
        await self.session.flush()
        return existing, False

    async def list_for_txid(self, txid: str) -> list[AssetTransfer]:
        """All ledger rows of one transaction."""
        result = await self.session.execute(
            select(AssetTransfer)
            .where(AssetTransfer.txid == txid)  # type: ignore[arg-type]
            .order_by(AssetTransfer.id.asc())  # type: ignore[union-attr]
        )
        return list(result.scalars().all())

    async def list_for_asset(self, asset_id: str) -> list[AssetTransfer]:
        """Ledger rows of one asset, oldest first."""
        result = await self.session.execute(
            select(AssetTransfer)
            .where(AssetTransfer.asset_id == asset_id)  # type: ignore[arg-type]
            .order_by(AssetTransfer.block_height.asc(), AssetTransfer.id.asc())  # type: ignore[attr-defined,union-attr]
        )
        return list(result.scalars().all())

    async def total_amount(self, asset_id: str, transfer_type: TransferType) -> float:
        """Sum of amounts of one row kind for an asset."""
        result = await self.session.execute(
            select(func.coalesce(func.sum(AssetTransfer.amount), 0.0)).where(
                AssetTransfer.asset_id == asset_id,  # type: ignore[arg-type]
                AssetTransfer.type == transfer_type,  # type: ignore[arg-type]
            )
        )
        return float(result.scalar_one())

    async def count(self) -> int:
        """Number of ledger rows."""
        result = await self.session.execute(select(func.count()).select_from(AssetTransfer))
        return int(result.scalar_one())

    async def delete_from_height(self, height: int) -> int:
        """Delete ledger rows in blocks above ``height``."""
        result = await self.session.execute(
            delete(AssetTransfer).where(AssetTransfer.block_height > height)  # type: ignore[arg-type]
        )
        await self.session.flush()
        return result.rowcount  # type: ignore[attr-defined]
