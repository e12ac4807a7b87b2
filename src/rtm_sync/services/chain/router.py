"""Per-transaction dispatch to the asset and future handlers."""

from typing import Any, assert_never

import structlog

from rtm_sync.services.chain.asset_processor import AssetProcessor
from rtm_sync.services.chain.future_checker import FutureChecker
from rtm_sync.services.chain.tx_types import (
    BlockContext,
    CreateAssetTx,
    FutureLockTx,
    MintAssetTx,
    ParsedTransaction,
    StandardTx,
    TransferTx,
    UpdateAssetTx,
    parse_transaction,
)
from rtm_sync.uow import UnitOfWork

logger = structlog.get_logger(__name__)


class TransactionRouter:
    """Route each transaction of a block to its handler.

    A handler failure is logged and swallowed: its savepoint is rolled back
    and the rest of the block continues. Block-level I/O failures are raised
    by the ingestion loop, not here.
    """

    def __init__(self, asset_processor: AssetProcessor, future_checker: FutureChecker):
        self.asset_processor = asset_processor
        self.future_checker = future_checker

    async def route(self, uow: UnitOfWork, tx: dict[str, Any], block: BlockContext) -> Any:
        """Dispatch one verbose transaction.

        Returns:
            The handler result, or None for standard transactions and failures
        """
        parsed = parse_transaction(tx)
        if isinstance(parsed, StandardTx):
            return None

        try:
            async with uow.savepoint():
                return await self._dispatch(uow, parsed, block)
        except Exception as e:
            logger.error(
                "router.handler_failed",
                txid=tx.get("txid"),
                kind=type(parsed).__name__,
                height=block.height,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return None

    async def _dispatch(
        self, uow: UnitOfWork, parsed: ParsedTransaction, block: BlockContext
    ) -> Any:
        match parsed:
            case CreateAssetTx():
                return await self.asset_processor.handle_creation(uow, parsed, block)
            case MintAssetTx():
                return await self.asset_processor.handle_mint(uow, parsed, block)
            case TransferTx():
                return await self.asset_processor.handle_transfer(uow, parsed, block)
            case UpdateAssetTx():
                return await self.asset_processor.handle_update(uow, parsed, block)
            case FutureLockTx():
                return await self.future_checker.handle_future_transaction(uow, parsed, block)
            case StandardTx():
                return None
            case _:
                assert_never(parsed)
