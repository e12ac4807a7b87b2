"""FutureOutput entity - Time/height-locked output with one-way unlock."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import BigInteger, Column, UniqueConstraint
from sqlmodel import Field, SQLModel

from rtm_sync.core.timezone import utcnow


class FutureType(str, Enum):
    """What the locked output carries."""

    RTM = "rtm"
    ASSET = "asset"


class FutureStatus(str, Enum):
    """Lock status."""

    LOCKED = "locked"
    UNLOCKED = "unlocked"


class UnlockReason(str, Enum):
    """Which maturity condition released the output."""

    CONFIRMATIONS = "confirmations"
    TIME = "time"


class InvalidFutureTransition(Exception):
    """Raised when unlocking an output that is already unlocked."""

    pass


class FutureOutput(SQLModel, table=True):
    """FutureOutput tracks a locked output created by a type-7 transaction."""

    __tablename__ = "future_outputs"  # type: ignore[assignment]
    __table_args__ = (UniqueConstraint("txid", "vout", name="uq_future_output_txid_vout"),)

    id: int | None = Field(default=None, primary_key=True)
    txid: str = Field(index=True, max_length=64)
    vout: int = Field(ge=0)
    type: FutureType = Field(index=True)
    amount: float = Field(default=0.0)
    amount_sat: Optional[int] = Field(default=None, sa_column=Column(BigInteger))
    asset_id: Optional[str] = Field(default=None, index=True, max_length=64)
    asset_name: Optional[str] = Field(default=None, index=True, max_length=255)
    recipient: str = Field(index=True, max_length=64)

    maturity: int = Field(default=0)
    lock_time: int = Field(default=0)  # seconds
    updatable_by_destination: bool = Field(default=False)

    created_height: int = Field(index=True)
    created_time: datetime
    # None when the corresponding condition is disabled (negative on chain)
    unlock_height: Optional[int] = Field(default=None, index=True)
    unlock_time: Optional[datetime] = Field(default=None, index=True)

    status: FutureStatus = Field(default=FutureStatus.LOCKED, index=True)
    unlocked_at: Optional[datetime] = Field(default=None)
    unlocked_by: Optional[UnlockReason] = Field(default=None)

    def maturity_reason(self, height: int, at: datetime) -> UnlockReason | None:
        """Condition that is satisfied at (height, at), confirmations first."""
        if self.unlock_height is not None and height >= self.unlock_height:
            return UnlockReason.CONFIRMATIONS
        if self.unlock_time is not None and at >= self.unlock_time:
            return UnlockReason.TIME
        return None

    def mark_unlocked(self, reason: UnlockReason) -> None:
        """Transition locked -> unlocked.

        Raises:
            InvalidFutureTransition: If already unlocked
        """
        if self.status != FutureStatus.LOCKED:
            raise InvalidFutureTransition(
                f"Cannot unlock {self.txid}:{self.vout} from {self.status.value}."
            )
        self.status = FutureStatus.UNLOCKED
        self.unlocked_by = reason
        self.unlocked_at = utcnow()
