"""IPFSCacheEntry entity - Non-authoritative metadata cache."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from rtm_sync.core.timezone import utcnow


class CacheStatus(str, Enum):
    """Outcome of the fetch stored in a cache entry."""

    SUCCESS = "success"
    ERROR = "error"


class IPFSCacheEntry(SQLModel, table=True):
    """IPFSCacheEntry caches a fetched metadata document (or the failure)."""

    __tablename__ = "ipfs_cache"  # type: ignore[assignment]

    id: int | None = Field(default=None, primary_key=True)
    hash: str = Field(unique=True, index=True, max_length=255)
    cache_metadata: dict = Field(
        default_factory=dict, sa_column=Column("metadata", JSON, nullable=False)
    )
    status: CacheStatus = Field(default=CacheStatus.SUCCESS)
    error_message: Optional[str] = Field(default=None, max_length=1000)
    size: int = Field(default=0)
    fetched_at: datetime = Field(default_factory=utcnow)
    last_accessed_at: datetime = Field(default_factory=utcnow, index=True)
    access_count: int = Field(default=1)
