"""Asset state derivation tests.

Tests cover the create -> mint -> transfer lifecycle end to end through the
router, plus:
- Replay idempotence (no duplicate ledger rows, no double-counted counters)
- Sub-asset naming with known and unknown parents
- Multi-output transfers and the asset_id identification path
- Supply conservation between mint and transfer ledger rows
- Best-effort IPFS metadata on creation
"""

import httpx
import pytest

from builders import (
    ADDR_A,
    ADDR_B,
    ADDR_C,
    ADDR_D,
    asset_output,
    block_ctx,
    block_datetime,
    create_asset_tx,
    mint_tx,
    pay_output,
    transfer_tx,
    txid,
)
from rtm_sync.models.asset import AssetType
from rtm_sync.models.asset_transfer import TransferType
from rtm_sync.models.ipfs_cache import CacheStatus
from rtm_sync.models.transaction import TransactionType
from rtm_sync.services.chain.asset_processor import AssetProcessor
from rtm_sync.services.chain.future_checker import FutureChecker
from rtm_sync.services.chain.router import TransactionRouter
from rtm_sync.services.ipfs.metadata_service import IPFSMetadataService

WIDGET_ID = txid("widget")


@pytest.fixture
def router() -> TransactionRouter:
    return TransactionRouter(AssetProcessor(), FutureChecker())


async def ingest(uow_factory, router, height, *txs):
    """Route transactions as if they were found in block ``height``."""
    ctx = block_ctx(height)
    async with await uow_factory() as uow:
        return [await router.route(uow, tx, ctx) for tx in txs]


def widget_create():
    return create_asset_tx("widget", "WIDGET", ADDR_A)


def widget_mint():
    return mint_tx("mint1", WIDGET_ID, "WIDGET", ADDR_B, 5)


def widget_transfer():
    return transfer_tx("xfer1", ADDR_B, [asset_output(0, ADDR_C, 2, name="WIDGET")])


@pytest.mark.asyncio
async def test_create_asset(uow_factory, router):
    """Block 100: a type-8 tx creates WIDGET owned by A."""
    await ingest(uow_factory, router, 100, widget_create())

    async with await uow_factory() as uow:
        asset = await uow.assets.get_by_asset_id(WIDGET_ID)
        assert asset is not None
        assert asset.name == "WIDGET"
        assert asset.type == AssetType.FUNGIBLE
        assert asset.creator == ADDR_A
        assert asset.current_owner == ADDR_A
        assert asset.mint_count == 0
        assert asset.created_block_height == 100
        assert asset.created_at == block_datetime(100)
        assert not asset.is_sub_asset

        transaction = await uow.transactions.get_by_txid(WIDGET_ID)
        assert transaction is not None
        assert transaction.type == TransactionType.ASSET_CREATE
        assert transaction.asset_data["operation"] == "create"
        assert transaction.block_hash == block_ctx(100).hash


@pytest.mark.asyncio
async def test_unique_asset_is_non_fungible(uow_factory, router):
    await ingest(uow_factory, router, 100, create_asset_tx("nft", "ART", ADDR_A, is_unique=True))

    async with await uow_factory() as uow:
        asset = await uow.assets.get_by_asset_id(txid("nft"))
        assert asset.type == AssetType.NON_FUNGIBLE
        assert asset.is_unique


@pytest.mark.asyncio
async def test_mint_updates_supply_and_owner(uow_factory, router):
    """Block 101: mint of 5 WIDGET to B."""
    await ingest(uow_factory, router, 100, widget_create())
    await ingest(uow_factory, router, 101, widget_mint())

    async with await uow_factory() as uow:
        asset = await uow.assets.get_by_asset_id(WIDGET_ID)
        assert asset.mint_count == 1
        assert asset.circulating_supply == 5
        assert asset.current_owner == ADDR_B

        transfers = await uow.asset_transfers.list_for_asset(WIDGET_ID)
        assert len(transfers) == 1
        assert transfers[0].type == TransferType.MINT
        assert transfers[0].from_address is None
        assert transfers[0].to_address == ADDR_B
        assert transfers[0].amount == 5

        transaction = await uow.transactions.get_by_txid(txid("mint1"))
        assert transaction.type == TransactionType.ASSET_MINT


@pytest.mark.asyncio
async def test_transfer_updates_owner_and_count(uow_factory, router):
    """Block 102: B sends 2 WIDGET to C."""
    await ingest(uow_factory, router, 100, widget_create())
    await ingest(uow_factory, router, 101, widget_mint())
    await ingest(uow_factory, router, 102, widget_transfer())

    async with await uow_factory() as uow:
        asset = await uow.assets.get_by_asset_id(WIDGET_ID)
        assert asset.current_owner == ADDR_C
        assert asset.transfer_count == 1
        assert asset.last_transfer["from"] == ADDR_B
        assert asset.last_transfer["to"] == ADDR_C
        assert asset.last_transfer["txid"] == txid("xfer1")

        transfers = await uow.asset_transfers.list_for_txid(txid("xfer1"))
        assert len(transfers) == 1
        assert transfers[0].type == TransferType.TRANSFER
        assert transfers[0].from_address == ADDR_B
        assert transfers[0].to_address == ADDR_C
        assert transfers[0].amount == 2
        assert transfers[0].asset_id == WIDGET_ID

        transaction = await uow.transactions.get_by_txid(txid("xfer1"))
        assert transaction.type == TransactionType.ASSET_TRANSFER


@pytest.mark.asyncio
async def test_replaying_blocks_does_not_double_count(uow_factory, router):
    """Re-ingesting blocks 100-102 after a restart leaves state unchanged."""
    await ingest(uow_factory, router, 100, widget_create())
    await ingest(uow_factory, router, 101, widget_mint())
    await ingest(uow_factory, router, 102, widget_transfer())

    # Simulated restart replays every block
    await ingest(uow_factory, router, 100, widget_create())
    await ingest(uow_factory, router, 101, widget_mint())
    await ingest(uow_factory, router, 102, widget_transfer())

    async with await uow_factory() as uow:
        asset = await uow.assets.get_by_asset_id(WIDGET_ID)
        assert asset.mint_count == 1
        assert asset.circulating_supply == 5
        assert asset.transfer_count == 1
        assert asset.current_owner == ADDR_C
        assert await uow.assets.count() == 1
        assert await uow.asset_transfers.count() == 2
        assert await uow.transactions.count_by_type(TransactionType.ASSET_CREATE) == 1
        assert await uow.transactions.count_by_type(TransactionType.ASSET_MINT) == 1
        assert await uow.transactions.count_by_type(TransactionType.ASSET_TRANSFER) == 1


@pytest.mark.asyncio
async def test_sub_asset_resolves_parent_by_root_id(uow_factory, router):
    parent = create_asset_tx("nukeboom", "NUKEBOOM", ADDR_A)
    child = create_asset_tx("tower", "tower", ADDR_A, is_root=False, root_id=txid("nukeboom"))

    await ingest(uow_factory, router, 100, parent)
    await ingest(uow_factory, router, 101, child)

    async with await uow_factory() as uow:
        asset = await uow.assets.get_by_asset_id(txid("tower"))
        assert asset.name == "NUKEBOOM|tower"
        assert asset.is_sub_asset
        assert asset.parent_asset_id == txid("nukeboom")
        assert asset.parent_asset_name == "NUKEBOOM"
        assert asset.sub_asset_name == "tower"
        assert not asset.has_unknown_parent


@pytest.mark.asyncio
async def test_sub_asset_parent_name_is_upper_cased(uow_factory, router):
    parent = create_asset_tx("nukeboom", "nukeboom", ADDR_A)
    child = create_asset_tx("tower", " tower ", ADDR_A, is_root=False, root_id=txid("nukeboom"))

    await ingest(uow_factory, router, 100, parent, child)

    async with await uow_factory() as uow:
        asset = await uow.assets.get_by_asset_id(txid("tower"))
        assert asset.name == "NUKEBOOM|tower"


@pytest.mark.asyncio
async def test_sub_asset_with_unindexed_parent_gets_unknown_prefix(uow_factory, router):
    child = create_asset_tx("tower", "tower", ADDR_A, is_root=False, root_id=txid("missing"))

    await ingest(uow_factory, router, 100, child)

    async with await uow_factory() as uow:
        asset = await uow.assets.get_by_asset_id(txid("tower"))
        assert asset.name == "UNKNOWN|tower"
        assert asset.is_sub_asset
        assert asset.parent_asset_id is None
        assert asset.has_unknown_parent

        unresolved = await uow.assets.list_unresolved_sub_assets()
        assert [a.asset_id for a in unresolved] == [txid("tower")]


@pytest.mark.asyncio
async def test_multi_output_transfer_records_each_output(uow_factory, router):
    tx = transfer_tx(
        "multi",
        ADDR_B,
        [
            asset_output(0, ADDR_C, 1, name="WIDGET"),
            pay_output(1, ADDR_B, 0.5),
            asset_output(2, ADDR_D, 2, name="WIDGET"),
        ],
    )
    await ingest(uow_factory, router, 100, widget_create())
    await ingest(uow_factory, router, 101, widget_mint())
    await ingest(uow_factory, router, 102, tx)

    async with await uow_factory() as uow:
        transfers = await uow.asset_transfers.list_for_txid(txid("multi"))
        assert [(t.to_address, t.amount) for t in transfers] == [(ADDR_C, 1), (ADDR_D, 2)]

        asset = await uow.assets.get_by_asset_id(WIDGET_ID)
        assert asset.transfer_count == 2
        assert asset.current_owner == ADDR_D
        assert await uow.transactions.count_by_type(TransactionType.ASSET_TRANSFER) == 1


@pytest.mark.asyncio
async def test_transfer_identified_by_suffixed_asset_id(uow_factory, router):
    tx = transfer_tx("byid", ADDR_B, [asset_output(0, ADDR_C, 1, asset_id=f"{WIDGET_ID}[1...50]")])
    await ingest(uow_factory, router, 100, widget_create())
    await ingest(uow_factory, router, 101, tx)

    async with await uow_factory() as uow:
        transfers = await uow.asset_transfers.list_for_txid(txid("byid"))
        assert len(transfers) == 1
        assert transfers[0].asset_id == WIDGET_ID
        assert transfers[0].asset_name == "WIDGET"

        asset = await uow.assets.get_by_asset_id(WIDGET_ID)
        assert asset.transfer_count == 1
        assert asset.current_owner == ADDR_C


@pytest.mark.asyncio
async def test_transfer_of_unindexed_asset_still_records_ledger_row(uow_factory, router):
    tx = transfer_tx("orphan", ADDR_B, [asset_output(0, ADDR_C, 1, asset_id="deadbeef[3]")])

    records = await ingest(uow_factory, router, 100, tx)

    assert len(records[0]) == 1
    async with await uow_factory() as uow:
        transfers = await uow.asset_transfers.list_for_txid(txid("orphan"))
        assert transfers[0].asset_id == "deadbeef"
        assert transfers[0].asset_name == "deadbeef"


@pytest.mark.asyncio
async def test_transfer_without_sender_address(uow_factory, router):
    tx = transfer_tx("nosender", None, [asset_output(0, ADDR_C, 1, name="WIDGET")])
    await ingest(uow_factory, router, 100, widget_create())
    await ingest(uow_factory, router, 101, tx)

    async with await uow_factory() as uow:
        transfers = await uow.asset_transfers.list_for_txid(txid("nosender"))
        assert transfers[0].from_address is None


@pytest.mark.asyncio
async def test_transferred_amounts_never_exceed_minted_supply(uow_factory, router):
    await ingest(uow_factory, router, 100, widget_create())
    await ingest(uow_factory, router, 101, widget_mint())
    await ingest(
        uow_factory,
        router,
        102,
        transfer_tx("x1", ADDR_B, [asset_output(0, ADDR_C, 2, name="WIDGET")]),
        transfer_tx("x2", ADDR_C, [asset_output(0, ADDR_D, 1, name="WIDGET")]),
    )
    # Replay must not inflate the ledger
    await ingest(
        uow_factory,
        router,
        102,
        transfer_tx("x1", ADDR_B, [asset_output(0, ADDR_C, 2, name="WIDGET")]),
    )

    async with await uow_factory() as uow:
        asset = await uow.assets.get_by_asset_id(WIDGET_ID)
        minted = await uow.asset_transfers.total_amount(WIDGET_ID, TransferType.MINT)
        transferred = await uow.asset_transfers.total_amount(WIDGET_ID, TransferType.TRANSFER)
        assert minted == asset.circulating_supply == 5
        assert transferred == 3
        assert transferred <= asset.circulating_supply


@pytest.mark.asyncio
async def test_mint_without_recipient_is_skipped(uow_factory, router):
    tx = mint_tx("mint1", WIDGET_ID, "WIDGET", ADDR_B, 5)
    del tx["vout"][1]["scriptPubKey"]["addresses"]
    await ingest(uow_factory, router, 100, widget_create())

    results = await ingest(uow_factory, router, 101, tx)

    assert results == [None]
    async with await uow_factory() as uow:
        asset = await uow.assets.get_by_asset_id(WIDGET_ID)
        assert asset.mint_count == 0
        assert await uow.asset_transfers.count() == 0
        assert await uow.transactions.get_by_txid(txid("mint1")) is None


@pytest.mark.asyncio
async def test_mint_of_unknown_asset_records_ledger_only(uow_factory, router):
    tx = mint_tx("mint1", txid("ghost"), "GHOST", ADDR_B, 5)

    results = await ingest(uow_factory, router, 101, tx)

    assert results[0].created
    async with await uow_factory() as uow:
        assert await uow.assets.count() == 0
        transfers = await uow.asset_transfers.list_for_asset(txid("ghost"))
        assert len(transfers) == 1
        assert transfers[0].asset_name == "GHOST"


@pytest.mark.asyncio
async def test_update_records_transaction_only(uow_factory, router):
    tx = {"txid": txid("upd"), "type": 9, "size": 180, "vin": [], "vout": []}

    await ingest(uow_factory, router, 100, tx)

    async with await uow_factory() as uow:
        transaction = await uow.transactions.get_by_txid(txid("upd"))
        assert transaction.type == TransactionType.ASSET_UPDATE
        assert transaction.asset_data["operation"] == "update"


@pytest.mark.asyncio
async def test_creation_fetches_ipfs_metadata(uow_factory):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"name": "Widget", "description": "A widget", "image": "ipfs://QmImage"},
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        ipfs = IPFSMetadataService(["http://ipfs.local:8080"], client=client)
        router = TransactionRouter(AssetProcessor(ipfs), FutureChecker())
        tx = create_asset_tx("widget", "WIDGET", ADDR_A, reference_hash="QmMeta")
        await ingest(uow_factory, router, 100, tx)

    async with await uow_factory() as uow:
        asset = await uow.assets.get_by_asset_id(WIDGET_ID)
        assert asset.ipfs_verified
        assert asset.ipfs_hash == "QmMeta"
        assert asset.ipfs_last_checked is not None
        assert asset.asset_metadata["description"] == "A widget"
        assert asset.asset_metadata["image_url"] == "http://ipfs.local:8080/ipfs/QmImage"


@pytest.mark.asyncio
async def test_creation_survives_ipfs_outage(uow_factory):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("gateway down", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        ipfs = IPFSMetadataService(["http://ipfs.local:8080", "https://ipfs.public"], client=client)
        router = TransactionRouter(AssetProcessor(ipfs), FutureChecker())
        tx = create_asset_tx("widget", "WIDGET", ADDR_A, reference_hash="QmMeta")
        await ingest(uow_factory, router, 100, tx)

    async with await uow_factory() as uow:
        asset = await uow.assets.get_by_asset_id(WIDGET_ID)
        assert asset is not None
        assert not asset.ipfs_verified
        assert asset.asset_metadata == {}

        entry = await uow.ipfs_cache.get_by_hash("QmMeta")
        assert entry.status == CacheStatus.ERROR


@pytest.mark.asyncio
async def test_creation_survives_unparseable_reference_hash(uow_factory):
    """A referenceHash that cannot form a gateway URL leaves metadata empty."""
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"name": "Widget"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        ipfs = IPFSMetadataService(["http://ipfs.local:8080"], client=client)
        router = TransactionRouter(AssetProcessor(ipfs), FutureChecker())
        tx = create_asset_tx("widget", "WIDGET", ADDR_A, reference_hash="Qm\x00bad")
        await ingest(uow_factory, router, 100, tx)

    assert requests == []
    async with await uow_factory() as uow:
        asset = await uow.assets.get_by_asset_id(WIDGET_ID)
        assert asset is not None
        assert asset.name == "WIDGET"
        assert not asset.ipfs_verified
        assert asset.asset_metadata == {}
        assert await uow.transactions.get_by_txid(WIDGET_ID) is not None
