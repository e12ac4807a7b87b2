"""Operator commands for the sync daemon.

Usage:
    python -m rtm_sync.cli <command> [OPTIONS]

Examples:
    # Create tables
    python -m rtm_sync.cli init-db

    # Start block ingestion (SYNC_ENABLED=true required)
    python -m rtm_sync.cli run

    # Show persisted progress
    python -m rtm_sync.cli status

    # Rewind the watermark after an out-of-band reorg purge
    python -m rtm_sync.cli resync --from-height 250000 --clear-all --confirm
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace

import structlog

from rtm_sync.app import serve
from rtm_sync.core import timezone  # noqa: F401
from rtm_sync.core.config import Settings, configure_logging
from rtm_sync.core.database import init_db, setup_db_session
from rtm_sync.models.transaction import TransactionType
from rtm_sync.services.chain.asset_processor import rebuild_asset_counters
from rtm_sync.services.exceptions import SyncHaltedError
from rtm_sync.uow import UnitOfWorkFactory, create_uow_factory
from rtm_sync.workers.sync_daemon import SYNC_SERVICE

logger = structlog.get_logger()


def parse_args(argv: list[str] | None = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(description="Raptoreum asset sync daemon")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("run", help="Start block ingestion")
    subparsers.add_parser("status", help="Print the persisted sync state")
    subparsers.add_parser(
        "init-db", help="Create tables from the models (PostgreSQL uses: alembic upgrade head)"
    )

    resync = subparsers.add_parser(
        "resync", help="Reset the checkpoint and optionally purge derived rows"
    )
    resync.add_argument(
        "--from-height",
        type=int,
        required=True,
        help="New watermark; ingestion restarts at from-height + 1",
    )
    purge = resync.add_mutually_exclusive_group()
    purge.add_argument(
        "--clear-transfers",
        action="store_true",
        help="Re-derive transfers above from-height and rebuild asset counters",
    )
    purge.add_argument(
        "--clear-all",
        action="store_true",
        help="Also drop assets and locked outputs created above from-height",
    )
    resync.add_argument(
        "--confirm",
        action="store_true",
        help="Required: acknowledge that this rewrites persisted state",
    )

    return parser.parse_args(argv)


async def show_status(uow_factory: UnitOfWorkFactory) -> int:
    async with await uow_factory() as uow:
        state = await uow.sync_state.get(SYNC_SERVICE)
        if state is None:
            logger.info("status.not_initialized", message="No sync state recorded yet")
            return 0

        logger.info(
            "status",
            status=state.status.value,
            current_block=state.current_block,
            target_block=state.target_block,
            behind=max(state.target_block - state.current_block, 0),
            blocks_processed=state.blocks_processed,
            average_block_time_ms=round(state.average_block_time, 1),
            last_synced_at=state.last_synced_at.isoformat() if state.last_synced_at else None,
            last_error=state.last_error,
            blocks=await uow.blocks.count(),
            assets=await uow.assets.count(),
            transfers=await uow.asset_transfers.count(),
            unresolved_sub_assets=len(await uow.assets.list_unresolved_sub_assets()),
            asset_creates=await uow.transactions.count_by_type(TransactionType.ASSET_CREATE),
        )
    return 0


async def resync(uow_factory: UnitOfWorkFactory, args: Namespace) -> int:
    """Reset the watermark to ``--from-height`` in one transaction.

    Both purge modes delete blocks, transactions and ledger rows above the
    height so the next run re-derives them, then rebuild asset counters from
    the ledger that remains. ``--clear-all`` also drops assets and locked
    outputs created above the height.

    Returns:
        Exit code: 0 (success), 1 (refused)
    """
    if not args.confirm:
        logger.error(
            "resync.refused",
            message="Resync rewrites persisted state. Re-run with --confirm to proceed.",
        )
        return 1
    if args.from_height < 0:
        logger.error("resync.refused", message="--from-height must be non-negative")
        return 1

    async with await uow_factory() as uow:
        deleted: dict[str, int] = {}

        if args.clear_transfers or args.clear_all:
            height = args.from_height
            deleted["asset_transfers"] = await uow.asset_transfers.delete_from_height(height)
            deleted["transactions"] = await uow.transactions.delete_from_height(height)
            deleted["blocks"] = await uow.blocks.delete_from_height(height)
            if args.clear_all:
                deleted["future_outputs"] = await uow.future_outputs.delete_from_height(height)
                deleted["assets"] = await uow.assets.delete_created_above(height)
            await rebuild_asset_counters(uow)

        state = await uow.sync_state.load(SYNC_SERVICE, args.from_height)
        previous = state.current_block
        state.reset_to(args.from_height)
        await uow.sync_state.save(state)

    logger.info(
        "resync.complete",
        previous_block=previous,
        current_block=args.from_height,
        deleted=deleted,
    )
    return 0


async def async_main(argv: list[str] | None = None) -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (success), 1 (error), 2 (interrupted)
    """
    args = parse_args(argv)

    settings = Settings()  # type: ignore[call-arg]
    if args.verbose:
        settings.log_level = "DEBUG"
    configure_logging(settings)

    try:
        if args.command == "run":
            await serve(settings)
            return 0

        session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
        engine = session_factory.kw["bind"]
        try:
            if args.command == "init-db":
                await init_db(engine)
                logger.info("init_db.complete")
                return 0

            uow_factory = create_uow_factory(session_factory)
            if args.command == "status":
                return await show_status(uow_factory)
            return await resync(uow_factory, args)
        finally:
            await engine.dispose()

    except SyncHaltedError as e:
        logger.error("cli.sync_halted", error=str(e))
        return 1

    except KeyboardInterrupt:
        logger.warning("cli.interrupted", command=args.command)
        return 2

    except Exception as e:
        logger.error("cli.fatal_error", command=args.command, error=str(e), exc_info=True)
        return 1


def main() -> int:
    """Synchronous wrapper for async main."""
    return asyncio.run(async_main())


if __name__ == "__main__":
    sys.exit(main())
