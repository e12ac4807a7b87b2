"""IPFS cache repository."""

from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rtm_sync.core.timezone import utcnow
from rtm_sync.models.ipfs_cache import CacheStatus, IPFSCacheEntry


class IPFSCacheRepository:
    """Repository for cached IPFS metadata documents."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get_by_hash(self, ipfs_hash: str) -> IPFSCacheEntry | None:
        """Retrieve cache entry by content hash."""
        result = await self.session.execute(
            select(IPFSCacheEntry).where(IPFSCacheEntry.hash == ipfs_hash)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def touch(self, entry: IPFSCacheEntry) -> IPFSCacheEntry:
        """Record a cache hit (access count and last access time)."""
        entry.access_count += 1
        entry.last_accessed_at = utcnow()
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def upsert(
        self,
        ipfs_hash: str,
        metadata: dict[str, Any],
        status: CacheStatus = CacheStatus.SUCCESS,
        error_message: str | None = None,
        size: int = 0,
    ) -> IPFSCacheEntry:
        """Store the outcome of a fetch, replacing any previous entry.

        Args:
            ipfs_hash: Content hash (CID)
            metadata: Parsed metadata document (or error payload)
            status: Fetch outcome
            error_message: Failure description for error entries
            size: Serialized size in bytes

        Returns:
            Stored cache entry
        """
        now = utcnow()
        entry = await self.get_by_hash(ipfs_hash)
        if entry is None:
            entry = IPFSCacheEntry(hash=ipfs_hash)

        entry.cache_metadata = metadata
        entry.status = status
        entry.error_message = error_message
        entry.size = size
        entry.fetched_at = now
        entry.last_accessed_at = now
        entry.access_count = 1
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def delete_not_accessed_since(self, cutoff: datetime) -> int:
        """Evict entries not read since ``cutoff``.

        Returns:
            Number of deleted entries
        """
        result = await self.session.execute(
            delete(IPFSCacheEntry).where(IPFSCacheEntry.last_accessed_at < cutoff)  # type: ignore[arg-type]
        )
        await self.session.flush()
        return result.rowcount  # type: ignore[attr-defined]

    async def count_by_status(self) -> dict[CacheStatus, int]:
        """Entry counts grouped by status."""
        result = await self.session.execute(
            select(IPFSCacheEntry.status, func.count()).group_by(IPFSCacheEntry.status)
        )
        return {status: int(count) for status, count in result.all()}
