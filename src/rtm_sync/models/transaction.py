"""Transaction entity - Write-once record of an asset-relevant transaction."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from rtm_sync.core.timezone import utcnow


class TransactionType(str, Enum):
    """Classification stored on the transaction row."""

    STANDARD = "standard"
    ASSET_CREATE = "asset_create"
    ASSET_MINT = "asset_mint"
    ASSET_TRANSFER = "asset_transfer"
    ASSET_UPDATE = "asset_update"
    FUTURE = "future"


class Transaction(SQLModel, table=True):
    """Transaction stores inputs/outputs and the typed payload summary.

    Created once per txid. The only permitted mutation is a one-time
    backfill of ``block_hash`` when the row was first stored without it.
    """

    __tablename__ = "transactions"  # type: ignore[assignment]

    id: int | None = Field(default=None, primary_key=True)
    txid: str = Field(unique=True, index=True, max_length=64)
    block_height: int = Field(index=True)
    block_hash: str = Field(default="", max_length=64)
    timestamp: datetime = Field(index=True)
    size: int = Field(default=0)
    fee: float = Field(default=0.0)
    inputs: list = Field(default_factory=list, sa_column=Column(JSON))
    outputs: list = Field(default_factory=list, sa_column=Column(JSON))
    type: TransactionType = Field(default=TransactionType.STANDARD, index=True)
    asset_data: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    future_data: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow)
