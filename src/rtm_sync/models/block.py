"""Block entity - Write-once record of an ingested block."""

from datetime import datetime

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from rtm_sync.core.timezone import utcnow


class Block(SQLModel, table=True):
    """Block mirrors one chain block header plus its txid list.

    Rows are created once per height and never updated; the presence of a
    row means every transaction in the block was routed and committed.
    """

    __tablename__ = "blocks"  # type: ignore[assignment]

    id: int | None = Field(default=None, primary_key=True)
    height: int = Field(unique=True, index=True, ge=0)
    hash: str = Field(unique=True, index=True, max_length=64)
    previous_hash: str = Field(default="", max_length=64)
    merkle_root: str = Field(default="", max_length=64)
    timestamp: datetime = Field(index=True)
    difficulty: float = Field(default=0.0)
    nonce: int = Field(default=0)
    size: int = Field(default=0)
    transaction_count: int = Field(default=0)
    transactions: list = Field(default_factory=list, sa_column=Column(JSON))
    miner: str | None = Field(default=None, index=True, max_length=64)
    reward: float = Field(default=0.0)
    created_at: datetime = Field(default_factory=utcnow)
