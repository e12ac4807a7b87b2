"""Asset repository."""

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rtm_sync.models.asset import Asset


class AssetRepository:
    """Repository for Asset entities.

    Lookups cover the two ways transactions reference an asset: by
    creation txid (mint payloads, ``asset_id`` outputs) and by name.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, asset: Asset) -> Asset:
        """Persist new asset to database."""
        self.session.add(asset)
        await self.session.flush()
        return asset

    async def save(self, asset: Asset) -> Asset:
        """Flush in-memory counter changes."""
        self.session.add(asset)
        await self.session.flush()
        return asset

    async def get_by_asset_id(self, asset_id: str) -> Asset | None:
        """Retrieve asset by its creation txid."""
        result = await self.session.execute(select(Asset).where(Asset.asset_id == asset_id))  # type: ignore[arg-type]
        return result.scalar_one_or_none()

    async def get_by_name(self, name: str) -> Asset | None:
        """Retrieve asset by full name (``ROOT`` or ``PARENT|leaf``).

        If an out-of-order sub-asset produced duplicate names, the earliest
        creation wins.
        """
        result = await self.session.execute(
            select(Asset)
            .where(Asset.name == name)  # type: ignore[arg-type]
            .order_by(Asset.created_block_height.asc())  # type: ignore[attr-defined]
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_unresolved_sub_assets(self) -> list[Asset]:
        """Sub-assets stored with the ``UNKNOWN`` parent placeholder."""
        result = await self.session.execute(
            select(Asset)
            .where(Asset.is_sub_asset.is_(True), Asset.parent_asset_id.is_(None))  # type: ignore[attr-defined,union-attr]
            .order_by(Asset.created_block_height.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def count(self) -> int:
        """Number of indexed assets."""
        result = await self.session.execute(select(func.count()).select_from(Asset))
        return int(result.scalar_one())

    async def list_all(self) -> list[Asset]:
        """Every indexed asset in creation order."""
        result = await self.session.execute(
            select(Asset).order_by(Asset.created_block_height.asc(), Asset.id.asc())  # type: ignore[attr-defined,union-attr]
        )
        return list(result.scalars().all())

    async def delete_created_above(self, height: int) -> int:
        """Delete assets created in blocks above ``height``.

        Returns:
            Number of deleted rows
        """
        result = await self.session.execute(
            delete(Asset).where(Asset.created_block_height > height)  # type: ignore[arg-type]
        )
        await self.session.flush()
        return result.rowcount  # type: ignore[attr-defined]
