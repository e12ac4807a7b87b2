"""Asset state derivation from create, mint, transfer and update transactions.

Handlers run inside the router's per-transaction savepoint. Ledger rows are
upserted and transaction rows are find-or-skip, so every counter on an Asset
moves only when the ledger row it corresponds to is new. Replaying a block
therefore leaves asset state unchanged.
"""

from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from rtm_sync.core.timezone import utcnow
from rtm_sync.models.asset import UNKNOWN_PARENT_NAME, Asset, AssetType
from rtm_sync.models.asset_transfer import AssetTransfer, TransferType
from rtm_sync.models.transaction import Transaction, TransactionType
from rtm_sync.services.chain.tx_types import (
    ASSET_TRANSFER_SCRIPT,
    AssetOutput,
    BlockContext,
    CreateAssetTx,
    MintAssetTx,
    TransferTx,
    UpdateAssetTx,
    first_input_address,
    output_recipient,
    parse_asset_output,
)
from rtm_sync.services.exceptions import ServiceError
from rtm_sync.services.ipfs.metadata_service import IPFSMetadataService
from rtm_sync.uow import UnitOfWork

logger = structlog.get_logger(__name__)


@dataclass
class TransferRecord:
    """Outcome of one mint or transfer output."""

    asset_id: str
    asset_name: str
    amount: float
    from_address: str | None
    to_address: str
    created: bool


def transaction_inputs(tx: dict[str, Any]) -> list[dict[str, Any]]:
    return [
        {
            "txid": vin.get("txid"),
            "vout": vin.get("vout"),
            "address": vin.get("address"),
            "amount": vin.get("value") or 0,
            "script_sig": (vin.get("scriptSig") or {}).get("hex"),
        }
        for vin in tx.get("vin") or []
    ]


def transaction_outputs(tx: dict[str, Any]) -> list[dict[str, Any]]:
    return [
        {
            "n": vout.get("n"),
            "address": output_recipient(vout),
            "amount": vout.get("value") or 0,
            "script_pub_key": (vout.get("scriptPubKey") or {}).get("hex"),
        }
        for vout in tx.get("vout") or []
    ]


async def record_transaction(
    uow: UnitOfWork,
    tx: dict[str, Any],
    block: BlockContext,
    tx_type: TransactionType,
    asset_data: dict[str, Any] | None = None,
    future_data: dict[str, Any] | None = None,
) -> tuple[Transaction, bool]:
    """Store the transaction row once per txid.

    Args:
        uow: Unit of work of the block being processed
        tx: Verbose transaction from the node
        block: Block the transaction was found in
        tx_type: Classification to store
        asset_data: Asset operation summary
        future_data: Lock parameters of a future transaction

    Returns:
        Tuple of (stored row, created flag)
    """
    transaction = Transaction(
        txid=tx["txid"],
        block_height=block.height,
        block_hash=tx.get("blockhash") or block.hash,
        timestamp=block.time,
        size=int(tx.get("size") or 0),
        fee=float(tx.get("fee") or 0),
        inputs=transaction_inputs(tx),
        outputs=transaction_outputs(tx),
        type=tx_type,
        asset_data=asset_data,
        future_data=future_data,
    )
    stored, created = await uow.transactions.record(transaction)
    if not created:
        logger.debug("transaction.already_recorded", txid=tx["txid"])
    return stored, created


def _first_mint_output(tx: dict[str, Any]) -> AssetOutput | None:
    """First ``transferasset`` output that carries an asset object."""
    for vout in tx.get("vout") or []:
        if (vout.get("scriptPubKey") or {}).get("type") != ASSET_TRANSFER_SCRIPT:
            continue
        output = parse_asset_output(vout)
        if output is not None:
            return output
    return None


def _asset_data(
    operation: str,
    asset_id: str | None,
    asset_name: str | None,
    amount: float,
    from_address: str | None,
    to_address: str | None,
) -> dict[str, Any]:
    return {
        "asset_id": asset_id,
        "asset_name": asset_name,
        "amount": amount,
        "from": from_address,
        "to": to_address,
        "operation": operation,
    }


async def rebuild_asset_counters(uow: UnitOfWork) -> int:
    """Recompute every asset's mint and transfer state from the stored ledger.

    Counters are reset to their creation values and the remaining ledger rows
    are replayed in block order through the same methods ingestion uses, so
    re-ingesting purged heights afterwards counts each row exactly once.

    Returns:
        Number of assets rebuilt
    """
    assets = await uow.assets.list_all()
    for asset in assets:
        asset.reset_counters()
        for row in await uow.asset_transfers.list_for_asset(asset.asset_id):
            if row.type == TransferType.MINT:
                asset.apply_mint(row.amount, row.to_address)
            else:
                asset.apply_transfer(row.txid, row.from_address, row.to_address, row.timestamp)
        await uow.assets.save(asset)

    logger.info("asset.counters_rebuilt", assets=len(assets))
    return len(assets)


class AssetProcessor:
    """Handlers for asset-bearing transactions.

    Args:
        ipfs: Metadata service for ``referenceHash`` documents. When None,
            assets are created without metadata.
    """

    def __init__(self, ipfs: IPFSMetadataService | None = None):
        self.ipfs = ipfs

    async def _fetch_metadata(
        self, uow: UnitOfWork, reference_hash: str, name: str
    ) -> dict[str, Any] | None:
        """Best-effort metadata lookup; None when unavailable."""
        if self.ipfs is None:
            return None

        try:
            document = await self.ipfs.fetch_metadata(reference_hash, uow)
        except (ServiceError, httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(
                "asset.metadata_failed",
                reference_hash=reference_hash,
                name=name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None
        if document is None:
            return None

        return {
            "name": document.get("name") or name,
            "description": document.get("description") or "",
            "image": document.get("image") or "",
            "image_url": self.ipfs.resolve_image_url(document, "image"),
            "animation_url": document.get("animation_url") or "",
            "external_url": document.get("external_url") or "",
            "attributes": document.get("attributes") or [],
            "properties": document.get("properties") or {},
            "raw": document,
        }

    async def handle_creation(
        self, uow: UnitOfWork, parsed: CreateAssetTx, block: BlockContext
    ) -> Asset | None:
        """Create the Asset defined by a type-8 transaction.

        A sub-asset (``isRoot`` explicitly false) carries only its leaf name on
        chain. Its full name is ``PARENT|leaf`` with the parent resolved by
        ``rootId``, or ``UNKNOWN|leaf`` when the parent is not indexed yet.

        Returns:
            The created Asset, the existing one on replay, or None when the
            payload is unusable
        """
        tx = parsed.tx
        txid = tx["txid"]
        payload = parsed.payload
        if payload is None:
            logger.warning("asset.create.missing_payload", txid=txid)
            return None
        if not payload.owner_address:
            logger.warning("asset.create.missing_owner", txid=txid, name=payload.name)
            return None

        existing = await uow.assets.get_by_asset_id(txid)
        if existing is not None:
            logger.debug("asset.create.already_indexed", txid=txid, name=existing.name)
            await record_transaction(
                uow,
                tx,
                block,
                TransactionType.ASSET_CREATE,
                asset_data=_asset_data("create", txid, existing.name, 0, None, existing.creator),
            )
            return existing

        name = payload.name
        parent_asset_id = None
        parent_asset_name = None
        sub_asset_name = None

        if payload.is_sub_asset:
            sub_asset_name = payload.name.strip()
            parent = await uow.assets.get_by_asset_id(payload.root_id) if payload.root_id else None
            if parent is not None:
                parent_asset_id = parent.asset_id
                parent_asset_name = parent.name.upper()
            else:
                parent_asset_name = UNKNOWN_PARENT_NAME
                logger.warning(
                    "asset.create.parent_not_found",
                    txid=txid,
                    root_id=payload.root_id,
                    leaf=sub_asset_name,
                )
            name = f"{parent_asset_name}|{sub_asset_name}"

        metadata: dict[str, Any] | None = None
        if payload.reference_hash:
            metadata = await self._fetch_metadata(uow, payload.reference_hash, name)

        asset = Asset(
            asset_id=txid,
            name=name,
            type=AssetType.NON_FUNGIBLE if payload.is_unique else AssetType.FUNGIBLE,
            created_at=block.time,
            created_txid=txid,
            created_block_height=block.height,
            creator=payload.owner_address,
            current_owner=payload.owner_address,
            is_unique=payload.is_unique,
            max_mint_count=payload.max_mint_count,
            updatable=payload.updatable,
            reference_hash=payload.reference_hash,
            ipfs_hash=payload.reference_hash,
            ipfs_verified=metadata is not None,
            ipfs_last_checked=utcnow() if payload.reference_hash else None,
            asset_metadata=metadata or {},
            is_sub_asset=payload.is_sub_asset,
            parent_asset_id=parent_asset_id,
            parent_asset_name=parent_asset_name,
            sub_asset_name=sub_asset_name,
        )
        await uow.assets.add(asset)

        await record_transaction(
            uow,
            tx,
            block,
            TransactionType.ASSET_CREATE,
            asset_data=_asset_data("create", txid, name, 0, None, payload.owner_address),
        )

        logger.info(
            "asset.created",
            asset_id=txid,
            name=name,
            height=block.height,
            sub_asset=payload.is_sub_asset,
            ipfs_verified=asset.ipfs_verified,
        )
        return asset

    async def handle_mint(
        self, uow: UnitOfWork, parsed: MintAssetTx, block: BlockContext
    ) -> TransferRecord | None:
        """Apply a type-10 mint to the asset named by the payload ``assetId``.

        The first ``transferasset`` output carrying an asset object supplies the
        amount and recipient.
        """
        tx = parsed.tx
        txid = tx["txid"]
        if not parsed.asset_id:
            logger.warning("asset.mint.missing_payload", txid=txid)
            return None

        output = _first_mint_output(tx)
        if output is None:
            logger.warning("asset.mint.no_asset_output", txid=txid, asset_id=parsed.asset_id)
            return None
        if not output.recipient:
            logger.warning("asset.mint.no_recipient", txid=txid, asset_id=parsed.asset_id)
            return None

        asset = await uow.assets.get_by_asset_id(parsed.asset_id)
        asset_name = output.asset_name or (asset.name if asset else parsed.asset_id)

        _, created = await uow.asset_transfers.upsert(
            AssetTransfer(
                txid=txid,
                asset_id=parsed.asset_id,
                asset_name=asset_name,
                from_address=None,
                to_address=output.recipient,
                amount=output.amount,
                type=TransferType.MINT,
                block_height=block.height,
                timestamp=block.time,
            )
        )

        if asset is None:
            logger.warning("asset.mint.asset_not_found", txid=txid, asset_id=parsed.asset_id)
        elif created:
            asset.apply_mint(output.amount, output.recipient)
            await uow.assets.save(asset)
            logger.info(
                "asset.minted",
                asset_id=asset.asset_id,
                name=asset_name,
                amount=output.amount,
                recipient=output.recipient,
                mint_count=asset.mint_count,
            )
        else:
            logger.debug("asset.mint.already_recorded", txid=txid, asset_id=parsed.asset_id)

        await record_transaction(
            uow,
            tx,
            block,
            TransactionType.ASSET_MINT,
            asset_data=_asset_data(
                "mint", parsed.asset_id, asset_name, output.amount, None, output.recipient
            ),
        )

        return TransferRecord(
            asset_id=parsed.asset_id,
            asset_name=asset_name,
            amount=output.amount,
            from_address=None,
            to_address=output.recipient,
            created=created,
        )

    async def _resolve_transfer_asset(
        self, uow: UnitOfWork, output: AssetOutput
    ) -> tuple[Asset | None, str, str] | None:
        """Find the asset an output moves.

        Returns:
            Tuple of (asset record or None, ledger asset id, ledger asset name),
            or None when the output names no asset at all
        """
        if output.asset_name:
            asset = await uow.assets.get_by_name(output.asset_name)
            asset_id = asset.asset_id if asset else output.asset_name
            return asset, asset_id, output.asset_name

        if output.asset_id:
            asset = await uow.assets.get_by_asset_id(output.asset_id)
            asset_name = asset.name if asset else output.asset_id
            return asset, output.asset_id, asset_name

        return None

    async def handle_transfer(
        self, uow: UnitOfWork, parsed: TransferTx, block: BlockContext
    ) -> list[TransferRecord]:
        """Record every asset output of a standard transaction.

        Each output yields its own ledger row. The sender is the first input
        carrying an address, which is a heuristic rather than a provenance
        trace of the spent outputs.
        """
        tx = parsed.tx
        txid = tx["txid"]
        sender = first_input_address(tx)
        records: list[TransferRecord] = []

        for output in parsed.outputs:
            if not output.recipient:
                logger.warning("asset.transfer.no_recipient", txid=txid, vout=output.n)
                continue

            resolved = await self._resolve_transfer_asset(uow, output)
            if resolved is None:
                logger.warning("asset.transfer.unidentified", txid=txid, vout=output.n)
                continue
            asset, asset_id, asset_name = resolved

            _, created = await uow.asset_transfers.upsert(
                AssetTransfer(
                    txid=txid,
                    asset_id=asset_id,
                    asset_name=asset_name,
                    from_address=sender,
                    to_address=output.recipient,
                    amount=output.amount,
                    type=TransferType.TRANSFER,
                    block_height=block.height,
                    timestamp=block.time,
                )
            )

            if asset is None:
                logger.warning(
                    "asset.transfer.asset_not_found", txid=txid, vout=output.n, asset=asset_name
                )
            elif created:
                asset.apply_transfer(txid, sender, output.recipient, block.time)
                await uow.assets.save(asset)
                logger.info(
                    "asset.transferred",
                    asset_id=asset.asset_id,
                    name=asset_name,
                    amount=output.amount,
                    sender=sender,
                    recipient=output.recipient,
                    transfer_count=asset.transfer_count,
                )

            records.append(
                TransferRecord(
                    asset_id=asset_id,
                    asset_name=asset_name,
                    amount=output.amount,
                    from_address=sender,
                    to_address=output.recipient,
                    created=created,
                )
            )

        if records:
            first = records[0]
            await record_transaction(
                uow,
                tx,
                block,
                TransactionType.ASSET_TRANSFER,
                asset_data=_asset_data(
                    "transfer",
                    first.asset_id,
                    first.asset_name,
                    first.amount,
                    first.from_address,
                    first.to_address,
                ),
            )
        else:
            logger.debug("asset.transfer.nothing_recorded", txid=txid)

        return records

    async def handle_update(
        self, uow: UnitOfWork, parsed: UpdateAssetTx, block: BlockContext
    ) -> Transaction:
        """Record a type-9 update; the update payload itself is not decoded."""
        logger.info("asset.update_detected", txid=parsed.tx["txid"], height=block.height)
        transaction, _ = await record_transaction(
            uow,
            parsed.tx,
            block,
            TransactionType.ASSET_UPDATE,
            asset_data=_asset_data("update", None, None, 0, None, None),
        )
        return transaction
