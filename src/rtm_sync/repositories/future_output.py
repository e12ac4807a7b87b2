"""FutureOutput repository."""

from datetime import datetime

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from rtm_sync.models.future_output import FutureOutput, FutureStatus


class FutureOutputRepository:
    """Repository for locked outputs created by future transactions."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, future: FutureOutput) -> FutureOutput:
        """Persist new locked output."""
        self.session.add(future)
        await self.session.flush()
        return future

    async def save(self, future: FutureOutput) -> FutureOutput:
        """Flush a status change made through ``mark_unlocked``."""
        self.session.add(future)
        await self.session.flush()
        return future

    async def get(self, txid: str, vout: int) -> FutureOutput | None:
        """Retrieve locked output by outpoint."""
        result = await self.session.execute(
            select(FutureOutput).where(
                FutureOutput.txid == txid,  # type: ignore[arg-type]
                FutureOutput.vout == vout,  # type: ignore[arg-type]
            )
        )
        return result.scalar_one_or_none()

    async def get_mature_locked(self, height: int, at: datetime) -> list[FutureOutput]:
        """Locked rows whose height or time condition is met.

        Query: status = locked AND (unlock_height <= height OR unlock_time <= at).
        Disabled conditions are NULL and never match.

        Args:
            height: Committed chain height
            at: Reference time (naive UTC)

        Returns:
            Rows ordered by creation height
        """
        result = await self.session.execute(
            select(FutureOutput)
            .where(
                FutureOutput.status == FutureStatus.LOCKED,  # type: ignore[arg-type]
                or_(
                    and_(
                        FutureOutput.unlock_height.is_not(None),  # type: ignore[union-attr]
                        FutureOutput.unlock_height <= height,  # type: ignore[operator]
                    ),
                    and_(
                        FutureOutput.unlock_time.is_not(None),  # type: ignore[union-attr]
                        FutureOutput.unlock_time <= at,  # type: ignore[operator]
                    ),
                ),
            )
            .order_by(FutureOutput.created_height.asc(), FutureOutput.vout.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def get_locked_for_address(self, address: str) -> list[FutureOutput]:
        """Locked outputs paying ``address``, newest first."""
        result = await self.session.execute(
            select(FutureOutput)
            .where(
                FutureOutput.recipient == address,  # type: ignore[arg-type]
                FutureOutput.status == FutureStatus.LOCKED,  # type: ignore[arg-type]
            )
            .order_by(FutureOutput.created_height.desc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def get_locked_for_asset(self, asset_id: str) -> list[FutureOutput]:
        """Locked outputs carrying units of ``asset_id``, newest first."""
        result = await self.session.execute(
            select(FutureOutput)
            .where(
                FutureOutput.asset_id == asset_id,  # type: ignore[arg-type]
                FutureOutput.status == FutureStatus.LOCKED,  # type: ignore[arg-type]
            )
            .order_by(FutureOutput.created_height.desc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def delete_from_height(self, height: int) -> int:
        """Delete outputs locked in blocks above ``height``."""
        result = await self.session.execute(
            delete(FutureOutput).where(FutureOutput.created_height > height)  # type: ignore[arg-type]
        )
        await self.session.flush()
        return result.rowcount  # type: ignore[attr-defined]
