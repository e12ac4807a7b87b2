"""AssetTransfer entity - Append-only mint/transfer ledger."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from rtm_sync.core.timezone import utcnow


class TransferType(str, Enum):
    """Ledger row kind."""

    MINT = "mint"
    TRANSFER = "transfer"


class AssetTransfer(SQLModel, table=True):
    """AssetTransfer is one asset movement to one recipient.

    (txid, asset_name, to_address) identifies a row, so replaying a block
    upserts instead of duplicating.
    """

    __tablename__ = "asset_transfers"  # type: ignore[assignment]
    __table_args__ = (
        UniqueConstraint(
            "txid", "asset_name", "to_address", name="uq_asset_transfer_txid_asset_to"
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    txid: str = Field(index=True, max_length=64)
    asset_id: str = Field(index=True, max_length=255)
    asset_name: str = Field(index=True, max_length=255)
    from_address: Optional[str] = Field(default=None, index=True, max_length=64)
    to_address: str = Field(index=True, max_length=64)
    amount: float = Field(default=0.0)
    type: TransferType = Field(index=True)
    block_height: int = Field(index=True)
    timestamp: datetime = Field(index=True)
    created_at: datetime = Field(default_factory=utcnow)
