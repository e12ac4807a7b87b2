"""SyncState entity - Persisted ingestion progress with status tracking."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import field_validator
from sqlmodel import Field, SQLModel

from rtm_sync.core.timezone import utcnow


class SyncStatus(str, Enum):
    """Ingestion stream status."""

    NOT_STARTED = "not_started"
    SYNCING = "syncing"
    SYNCED = "synced"
    ERROR = "error"
    PAUSED = "paused"


class InvalidStateTransition(Exception):
    """Raised when attempting an invalid sync state transition."""

    pass


class SyncState(SQLModel, table=True):
    """SyncState is the single progress record of one ingestion stream.

    ``current_block`` is the watermark: every height at or below it has been
    fully committed. It only moves backwards through ``reset_to``.
    """

    __tablename__ = "sync_state"  # type: ignore[assignment]

    service: str = Field(primary_key=True, max_length=50)
    current_block: int = Field(default=0, ge=0)
    target_block: int = Field(default=0, ge=0)
    start_block: int = Field(default=0, ge=0)
    blocks_processed: int = Field(default=0, ge=0)
    average_block_time: float = Field(default=0.0)  # milliseconds per block
    status: SyncStatus = Field(default=SyncStatus.NOT_STARTED, index=True)
    last_error: Optional[str] = Field(default=None, max_length=2000)
    last_synced_at: Optional[datetime] = Field(default=None)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("service")
    @classmethod
    def validate_service(cls, v: str) -> str:
        """Validate service key is alphanumeric + underscores only."""
        if not v.replace("_", "").isalnum():
            raise ValueError("Service must be alphanumeric with underscores only")
        return v

    def mark_syncing(self) -> None:
        """Enter syncing (fresh start, new chain height, or recovery from error).

        Clears any error overlay left by a previous failed iteration.

        Raises:
            InvalidStateTransition: If the stream is paused
        """
        if self.status == SyncStatus.PAUSED:
            raise InvalidStateTransition(
                "Cannot mark syncing from paused. Restart the daemon to resume."
            )
        self.status = SyncStatus.SYNCING
        self.last_error = None

    def mark_synced(self) -> None:
        """Caught up with the node tip.

        Raises:
            InvalidStateTransition: If the stream is paused
        """
        if self.status == SyncStatus.PAUSED:
            raise InvalidStateTransition(
                "Cannot mark synced from paused. Restart the daemon to resume."
            )
        self.status = SyncStatus.SYNCED
        self.last_error = None

    def mark_error(self, message: str) -> None:
        """Record a failure overlay (allowed from any state)."""
        self.status = SyncStatus.ERROR
        self.last_error = message[:2000]

    def mark_paused(self) -> None:
        """Operator or shutdown pause (allowed from any state)."""
        self.status = SyncStatus.PAUSED

    def resume(self) -> None:
        """Leave paused on daemon restart; progress is kept."""
        if self.status == SyncStatus.PAUSED:
            self.status = SyncStatus.NOT_STARTED

    def record_checkpoint(self, height: int, average_block_time: float | None = None) -> None:
        """Advance the watermark; lower heights are ignored."""
        if height > self.current_block:
            self.blocks_processed += height - self.current_block
            self.current_block = height
        if average_block_time is not None:
            self.average_block_time = average_block_time
        self.last_synced_at = utcnow()

    def reset_to(self, height: int) -> None:
        """Explicit external reset of the watermark (operator resync)."""
        if height < 0:
            raise ValueError("height must be non-negative")
        self.current_block = height
        self.status = SyncStatus.NOT_STARTED
        self.last_error = None
