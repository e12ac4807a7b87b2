"""Locked ("future") outputs: creation from type-7 transactions and maturity scan."""

from datetime import datetime, timedelta

import structlog

from rtm_sync.models.future_output import FutureOutput, FutureType
from rtm_sync.models.transaction import TransactionType
from rtm_sync.services.chain.asset_processor import record_transaction
from rtm_sync.services.chain.tx_types import (
    ASSET_TRANSFER_SCRIPT,
    BlockContext,
    FutureLockTx,
    output_recipient,
    strip_asset_id_suffix,
)
from rtm_sync.uow import UnitOfWork

logger = structlog.get_logger(__name__)

SATOSHIS_PER_RTM = 100_000_000


class FutureChecker:
    """Tracks locked outputs until their confirmation count or time is reached."""

    async def handle_future_transaction(
        self, uow: UnitOfWork, parsed: FutureLockTx, block: BlockContext
    ) -> FutureOutput | None:
        """Persist the locked output referenced by ``lockOutputIndex``.

        ``unlock_height`` is ``height + maturity`` and ``unlock_time`` is
        ``block time + lockTime`` seconds. A negative maturity or lockTime
        disables that condition.

        Args:
            uow: Unit of work of the block being processed
            parsed: Future transaction with its payload
            block: Block the transaction was found in

        Returns:
            The locked output (existing one on replay), or None when the payload
            or the referenced output is unusable
        """
        tx = parsed.tx
        txid = tx["txid"]
        payload = parsed.payload
        if payload is None:
            logger.warning("future.missing_payload", txid=txid)
            return None

        vouts = tx.get("vout") or []
        index = payload.lock_output_index
        if index is None or not 0 <= index < len(vouts):
            logger.warning("future.invalid_lock_output", txid=txid, lock_output_index=index)
            return None

        locked_vout = vouts[index]
        recipient = output_recipient(locked_vout)
        if not recipient:
            logger.warning("future.no_recipient", txid=txid, vout=index)
            return None

        unlock_height = block.height + payload.maturity if payload.maturity >= 0 else None
        unlock_time = (
            block.time + timedelta(seconds=payload.lock_time) if payload.lock_time >= 0 else None
        )

        future = await uow.future_outputs.get(txid, index)
        if future is not None:
            logger.debug("future.already_recorded", txid=txid, vout=index)
        else:
            script = locked_vout.get("scriptPubKey") or {}
            asset = script.get("asset") or {}
            asset_id = None
            asset_name = None
            amount_sat = None

            if script.get("type") == ASSET_TRANSFER_SCRIPT:
                future_type = FutureType.ASSET
                amount = float(asset.get("amount") or 0)
                asset_name = asset.get("name") or None
                if asset_name:
                    record = await uow.assets.get_by_name(asset_name)
                    asset_id = record.asset_id if record else None
                elif asset.get("asset_id"):
                    asset_id = strip_asset_id_suffix(asset["asset_id"])
            else:
                future_type = FutureType.RTM
                amount = float(locked_vout.get("value") or 0)
                amount_sat = round(amount * SATOSHIS_PER_RTM)

            future = await uow.future_outputs.add(
                FutureOutput(
                    txid=txid,
                    vout=index,
                    type=future_type,
                    amount=amount,
                    amount_sat=amount_sat,
                    asset_id=asset_id,
                    asset_name=asset_name,
                    recipient=recipient,
                    maturity=payload.maturity,
                    lock_time=payload.lock_time,
                    updatable_by_destination=payload.updatable_by_destination,
                    created_height=block.height,
                    created_time=block.time,
                    unlock_height=unlock_height,
                    unlock_time=unlock_time,
                )
            )
            logger.info(
                "future.created",
                txid=txid,
                vout=index,
                type=future_type.value,
                amount=amount,
                unlock_height=unlock_height,
                unlock_time=unlock_time.isoformat() if unlock_time else None,
            )

        await record_transaction(
            uow,
            tx,
            block,
            TransactionType.FUTURE,
            future_data={
                "maturity": payload.maturity,
                "lock_time": payload.lock_time,
                "unlock_height": unlock_height,
                "unlock_time": unlock_time.isoformat() if unlock_time else None,
                "locked_amount": future.amount,
                "asset_id": future.asset_id,
            },
        )
        return future

    async def check_and_unlock_mature_futures(
        self, uow: UnitOfWork, height: int, at: datetime
    ) -> int:
        """Unlock every locked output whose height or time condition holds.

        ``unlocked_by`` is ``confirmations`` when the height condition holds,
        otherwise ``time``.

        Args:
            uow: Unit of work to run the scan in
            height: Committed chain height
            at: Reference time (naive UTC)

        Returns:
            Number of outputs unlocked
        """
        mature = await uow.future_outputs.get_mature_locked(height, at)
        unlocked = 0

        for future in mature:
            reason = future.maturity_reason(height, at)
            if reason is None:
                continue
            future.mark_unlocked(reason)
            await uow.future_outputs.save(future)
            unlocked += 1
            logger.info(
                "future.unlocked", txid=future.txid, vout=future.vout, unlocked_by=reason.value
            )

        if unlocked:
            logger.info("future.scan_complete", height=height, unlocked=unlocked)
        return unlocked

    async def get_locked_futures_for_address(
        self, uow: UnitOfWork, address: str
    ) -> list[FutureOutput]:
        return await uow.future_outputs.get_locked_for_address(address)

    async def get_locked_futures_for_asset(
        self, uow: UnitOfWork, asset_id: str
    ) -> list[FutureOutput]:
        return await uow.future_outputs.get_locked_for_asset(asset_id)
