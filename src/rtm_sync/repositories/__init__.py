"""Repository layer for the sync daemon.

Provides data access abstractions for all domain entities.
No base classes - each repository is self-contained.
"""

from rtm_sync.repositories.asset import AssetRepository
from rtm_sync.repositories.asset_transfer import AssetTransferRepository
from rtm_sync.repositories.block import BlockRepository
from rtm_sync.repositories.future_output import FutureOutputRepository
from rtm_sync.repositories.ipfs_cache import IPFSCacheRepository
from rtm_sync.repositories.sync_state import SyncStateRepository
from rtm_sync.repositories.transaction import TransactionRepository

__all__ = [
    "AssetRepository",
    "AssetTransferRepository",
    "BlockRepository",
    "FutureOutputRepository",
    "IPFSCacheRepository",
    "SyncStateRepository",
    "TransactionRepository",
]
