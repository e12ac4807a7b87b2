"""SyncState repository.

Provides load-or-create and field merge for the per-stream progress record.
"""

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rtm_sync.core.timezone import utcnow
from rtm_sync.models.sync_state import SyncState


class SyncStateRepository:
    """Repository for SyncState rows (one per ingestion stream)."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get(self, service: str) -> SyncState | None:
        """Retrieve the progress record of a stream, if any."""
        result = await self.session.execute(select(SyncState).where(SyncState.service == service))  # type: ignore[arg-type]
        return result.scalar_one_or_none()

    async def load(self, service: str, start_height: int = 0) -> SyncState:
        """Return the persisted record, creating the default one when absent.

        The default starts at ``start_height`` with status ``not_started``.

        Args:
            service: Stream key (e.g. "blocks")
            start_height: Watermark for a brand new stream

        Returns:
            Existing or newly created SyncState
        """
        state = await self.get(service)
        if state is not None:
            return state

        state = SyncState(
            service=service,
            current_block=start_height,
            start_block=start_height,
        )
        self.session.add(state)
        await self.session.flush()
        return state

    async def update(self, service: str, **fields: Any) -> SyncState:
        """Merge fields into the record (creating it if needed) and stamp updated_at.

        Args:
            service: Stream key
            **fields: SyncState attribute values to set

        Returns:
            Updated SyncState

        Raises:
            AttributeError: If a field is not a SyncState attribute
        """
        state = await self.load(service)
        for name, value in fields.items():
            if name not in SyncState.model_fields:
                raise AttributeError(f"SyncState has no field '{name}'")
            setattr(state, name, value)
        return await self.save(state)

    async def save(self, state: SyncState) -> SyncState:
        """Persist in-memory changes made through the state transition methods."""
        state.updated_at = utcnow()
        self.session.add(state)
        await self.session.flush()
        return state
