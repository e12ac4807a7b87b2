"""Daemon assembly and process lifecycle."""

import asyncio
import signal

import structlog

from rtm_sync.core import timezone  # noqa: F401
from rtm_sync.core.config import Settings
from rtm_sync.core.database import setup_db_session
from rtm_sync.services.chain.asset_processor import AssetProcessor
from rtm_sync.services.chain.future_checker import FutureChecker
from rtm_sync.services.chain.router import TransactionRouter
from rtm_sync.services.ipfs.metadata_service import IPFSMetadataService
from rtm_sync.services.rpc.client import RaptoreumRPCClient
from rtm_sync.uow import UnitOfWorkFactory, create_uow_factory
from rtm_sync.workers.sync_daemon import SyncDaemon

logger = structlog.get_logger()


def build_daemon(
    settings: Settings,
    uow_factory: UnitOfWorkFactory,
    rpc: RaptoreumRPCClient | None = None,
    ipfs: IPFSMetadataService | None = None,
) -> SyncDaemon:
    """Wire the ingestion loop from settings.

    Args:
        settings: Application settings
        uow_factory: Unit of work factory bound to the target database
        rpc: Node client (built from RTM_RPC_* settings when omitted)
        ipfs: Metadata service (built from IPFS_* settings when omitted)

    Returns:
        Ready-to-run SyncDaemon
    """
    if rpc is None:
        rpc = RaptoreumRPCClient(
            settings.rpc_url,
            settings.rpc_user,
            settings.rpc_password,
            timeout=settings.rpc_timeout_seconds,
        )
    if ipfs is None and settings.ipfs_gateways:
        ipfs = IPFSMetadataService(settings.ipfs_gateways, timeout=settings.ipfs_timeout_seconds)

    future_checker = FutureChecker()
    router = TransactionRouter(AssetProcessor(ipfs), future_checker)
    return SyncDaemon(settings, uow_factory, rpc, router, future_checker)


async def serve(settings: Settings) -> None:
    """Run the daemon until SIGINT/SIGTERM, then persist ``paused`` and exit.

    Raises:
        SyncHaltedError: When the restart budget is exhausted
    """
    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory)
    daemon = build_daemon(settings, uow_factory)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, daemon.request_stop)

    logger.info(
        "application.startup",
        db_url=settings.database_url.split("@")[-1],
        rpc_url=settings.rpc_url,
        ipfs_gateways=settings.ipfs_gateways,
    )

    try:
        await daemon.run()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        await daemon.rpc.aclose()
        engine = session_factory.kw.get("bind")
        if engine is not None:
            await engine.dispose()
        logger.info("application.shutdown")
