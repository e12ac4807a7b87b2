"""Background workers for block ingestion."""

from rtm_sync.workers.sync_daemon import SYNC_SERVICE, SyncDaemon

__all__ = [
    "SYNC_SERVICE",
    "SyncDaemon",
]
