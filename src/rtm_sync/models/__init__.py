"""SQLModel database entities.

All models are imported here to ensure they're registered with SQLModel metadata
before ``init_db`` creates the tables.
"""

from rtm_sync.models.asset import Asset, AssetType
from rtm_sync.models.asset_transfer import AssetTransfer, TransferType
from rtm_sync.models.block import Block
from rtm_sync.models.future_output import (
    FutureOutput,
    FutureStatus,
    FutureType,
    InvalidFutureTransition,
    UnlockReason,
)
from rtm_sync.models.ipfs_cache import CacheStatus, IPFSCacheEntry
from rtm_sync.models.sync_state import InvalidStateTransition, SyncState, SyncStatus
from rtm_sync.models.transaction import Transaction, TransactionType

__all__ = [
    "Asset",
    "AssetType",
    "AssetTransfer",
    "TransferType",
    "Block",
    "FutureOutput",
    "FutureStatus",
    "FutureType",
    "InvalidFutureTransition",
    "UnlockReason",
    "CacheStatus",
    "IPFSCacheEntry",
    "SyncState",
    "SyncStatus",
    "InvalidStateTransition",
    "Transaction",
    "TransactionType",
]
