"""Asset entity - Current ownership and supply state of a token."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from rtm_sync.core.timezone import utcnow

UNKNOWN_PARENT_NAME = "UNKNOWN"


class AssetType(str, Enum):
    """Fungibility of an asset, fixed at creation."""

    FUNGIBLE = "fungible"
    NON_FUNGIBLE = "non-fungible"


class Asset(SQLModel, table=True):
    """Asset is keyed by its creation txid and mutated by mints and transfers.

    Counters only increase during ingestion. ``current_owner`` is the last
    recipient touched by a mint or transfer, not a holder registry.
    """

    __tablename__ = "assets"  # type: ignore[assignment]

    id: int | None = Field(default=None, primary_key=True)
    asset_id: str = Field(unique=True, index=True, max_length=64)
    name: str = Field(index=True, max_length=255)
    type: AssetType = Field(index=True)
    created_at: datetime = Field(index=True)
    created_txid: str = Field(max_length=64)
    created_block_height: int
    creator: str = Field(index=True, max_length=64)
    current_owner: Optional[str] = Field(default=None, index=True, max_length=64)

    is_unique: bool = Field(default=False)
    max_mint_count: int = Field(default=0)
    mint_count: int = Field(default=0, ge=0)
    updatable: bool = Field(default=False)

    total_supply: float = Field(default=0.0)
    circulating_supply: float = Field(default=0.0)
    decimals: int = Field(default=0)
    transfer_count: int = Field(default=0, ge=0)
    last_transfer: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    reference_hash: Optional[str] = Field(default=None, max_length=255)
    ipfs_hash: Optional[str] = Field(default=None, index=True, max_length=255)
    ipfs_verified: bool = Field(default=False)
    ipfs_last_checked: Optional[datetime] = Field(default=None)
    # "metadata" is reserved on declarative classes
    asset_metadata: dict = Field(
        default_factory=dict, sa_column=Column("metadata", JSON, nullable=False)
    )

    is_sub_asset: bool = Field(default=False, index=True)
    parent_asset_id: Optional[str] = Field(default=None, index=True, max_length=64)
    parent_asset_name: Optional[str] = Field(default=None, max_length=255)
    sub_asset_name: Optional[str] = Field(default=None, max_length=255)

    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def has_unknown_parent(self) -> bool:
        """Sub-asset created before its parent was indexed."""
        return self.is_sub_asset and self.parent_asset_id is None

    def apply_mint(self, amount: float, recipient: str) -> None:
        """Record one mint of ``amount`` units delivered to ``recipient``."""
        self.mint_count += 1
        self.circulating_supply += amount
        self.current_owner = recipient
        self.updated_at = utcnow()

    def apply_transfer(
        self, txid: str, sender: str | None, recipient: str, timestamp: datetime
    ) -> None:
        """Record one transferred output."""
        self.current_owner = recipient
        self.transfer_count += 1
        self.last_transfer = {
            "txid": txid,
            "from": sender,
            "to": recipient,
            "timestamp": timestamp.isoformat(),
        }
        self.updated_at = utcnow()

    def reset_counters(self) -> None:
        """Return mint and transfer state to what creation left behind.

        Only used before replaying the ledger after an operator purge.
        """
        self.mint_count = 0
        self.circulating_supply = 0.0
        self.transfer_count = 0
        self.last_transfer = None
        self.current_owner = self.creator
        self.updated_at = utcnow()
