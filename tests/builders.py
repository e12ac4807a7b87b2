"""Verbose block/transaction builders and node fakes shared by the tests.

Transactions mirror ``getblock <hash> 2`` output of a Raptoreum node.
"""

from datetime import datetime
from typing import Any, Callable

from rtm_sync.core.timezone import from_block_time
from rtm_sync.services.chain.tx_types import BlockContext
from rtm_sync.services.exceptions import RPCConnectionError
from rtm_sync.services.rpc.client import NodeHealth

GENESIS_TIME = 1_700_000_000
BLOCK_SPACING = 120

ADDR_A = "RAaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa"
ADDR_B = "RBbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb"
ADDR_C = "RCcccccccccccccccccccccccccccccccc"
ADDR_D = "RDdddddddddddddddddddddddddddddddd"
ADDR_MINER = "RMmmmmmmmmmmmmmmmmmmmmmmmmmmmmmmmm"


def txid(tag: str) -> str:
    """64-char hex-looking txid derived from a short tag."""
    return tag.encode().hex().ljust(64, "0")[:64]


def block_time(height: int) -> int:
    return GENESIS_TIME + height * BLOCK_SPACING


def block_ctx(height: int) -> BlockContext:
    return BlockContext(height=height, hash=f"{height:064x}", time=block_datetime(height))


def block_datetime(height: int) -> datetime:
    return from_block_time(block_time(height))


def vin(address: str | None, value: float = 1.0) -> dict[str, Any]:
    entry: dict[str, Any] = {"txid": txid("prev"), "vout": 0, "value": value}
    if address:
        entry["address"] = address
    return entry


def pay_output(n: int, address: str, value: float) -> dict[str, Any]:
    return {
        "n": n,
        "value": value,
        "scriptPubKey": {"type": "pubkeyhash", "addresses": [address], "hex": "76a9"},
    }


def asset_output(
    n: int,
    address: str | None,
    amount: float,
    name: str | None = None,
    asset_id: str | None = None,
) -> dict[str, Any]:
    asset: dict[str, Any] = {"amount": amount}
    if name:
        asset["name"] = name
    if asset_id:
        asset["asset_id"] = asset_id
    script: dict[str, Any] = {"type": "transferasset", "asset": asset, "hex": "76a9c0"}
    if address:
        script["addresses"] = [address]
    return {"n": n, "value": 0, "scriptPubKey": script}


def coinbase_tx(height: int) -> dict[str, Any]:
    return {
        "txid": txid(f"cb{height}"),
        "type": 5,
        "size": 200,
        "vin": [{"coinbase": "03" + f"{height:06x}"}],
        "vout": [pay_output(0, ADDR_MINER, 3750.0)],
    }


def create_asset_tx(
    tag: str,
    name: str,
    owner: str,
    is_unique: bool = False,
    is_root: bool | None = True,
    root_id: str | None = None,
    reference_hash: str | None = None,
    max_mint_count: int = 10,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "name": name,
        "isUnique": is_unique,
        "maxMintCount": max_mint_count,
        "updatable": True,
        "ownerAddress": owner,
    }
    if is_root is not None:
        payload["isRoot"] = is_root
    if root_id:
        payload["rootId"] = root_id
    if reference_hash:
        payload["referenceHash"] = reference_hash
    return {
        "txid": txid(tag),
        "type": 8,
        "size": 300,
        "vin": [vin(owner)],
        "vout": [pay_output(0, owner, 0.5)],
        "newAssetTx": payload,
    }


def mint_tx(
    tag: str,
    asset_id: str,
    name: str,
    recipient: str,
    amount: float,
    payload_key: str = "mintAssetTx",
) -> dict[str, Any]:
    return {
        "txid": txid(tag),
        "type": 10,
        "size": 250,
        "vin": [vin(ADDR_A)],
        "vout": [pay_output(0, ADDR_A, 0.1), asset_output(1, recipient, amount, name=name)],
        payload_key: {"assetId": asset_id},
    }


def transfer_tx(tag: str, sender: str | None, outputs: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "txid": txid(tag),
        "type": 0,
        "size": 220,
        "vin": [vin(None), vin(sender)] if sender else [vin(None)],
        "vout": outputs,
    }


def future_tx(
    tag: str,
    recipient: str,
    value: float,
    maturity: int,
    lock_time: int,
    lock_output_index: int = 0,
    asset: dict[str, Any] | None = None,
) -> dict[str, Any]:
    if asset is not None:
        locked = asset_output(0, recipient, asset["amount"], name=asset.get("name"))
    else:
        locked = pay_output(0, recipient, value)
    return {
        "txid": txid(tag),
        "type": 7,
        "size": 260,
        "vin": [vin(ADDR_A)],
        "vout": [locked, pay_output(1, ADDR_A, 0.2)],
        "futureTx": {
            "maturity": maturity,
            "lockTime": lock_time,
            "lockOutputIndex": lock_output_index,
            "updatableByDestination": False,
        },
    }


def make_block(height: int, txs: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    transactions = [coinbase_tx(height), *(txs or [])]
    return {
        "height": height,
        "hash": f"{height:064x}",
        "previousblockhash": f"{height - 1:064x}",
        "merkleroot": "ab" * 32,
        "time": block_time(height),
        "difficulty": 1234.5,
        "nonce": height * 7,
        "size": 1000 + 100 * len(transactions),
        "tx": transactions,
    }


class FakeRPC:
    """In-memory node: blocks keyed by height, with injectable failures."""

    def __init__(self, blocks: list[dict[str, Any]] | None = None, tip: int | None = None):
        self.blocks: dict[int, dict[str, Any]] = {}
        self._tip = tip
        self.fail_heights: dict[int, int] = {}  # height -> remaining failures
        self.fail_info = False
        self.healthy = True
        self.on_get_block: Callable[[int], None] | None = None
        self.calls: list[tuple[str, Any]] = []
        for block in blocks or []:
            self.add_block(block)

    def add_block(self, block: dict[str, Any]) -> None:
        self.blocks[block["height"]] = block

    @property
    def tip(self) -> int:
        if self._tip is not None:
            return self._tip
        return max(self.blocks) if self.blocks else 0

    async def check_health(self) -> NodeHealth:
        self.calls.append(("check_health", None))
        if not self.healthy:
            return NodeHealth(status="error", message="connection refused")
        return NodeHealth(status="connected", message="ok", blocks=self.tip, chain="main")

    async def get_blockchain_info(self) -> dict[str, Any]:
        self.calls.append(("getblockchaininfo", None))
        if self.fail_info:
            raise RPCConnectionError("connection refused", "getblockchaininfo")
        return {"chain": "main", "blocks": self.tip, "headers": self.tip}

    async def get_block_hash(self, height: int) -> str:
        self.calls.append(("getblockhash", height))
        remaining = self.fail_heights.get(height, 0)
        if remaining:
            self.fail_heights[height] = remaining - 1
            raise RPCConnectionError("connection reset", "getblockhash")
        return self.blocks[height]["hash"]

    async def get_block(self, hash_or_height: str | int, verbosity: int = 2) -> dict[str, Any]:
        self.calls.append(("getblock", hash_or_height))
        for height, block in self.blocks.items():
            if block["hash"] == hash_or_height or height == hash_or_height:
                if self.on_get_block is not None:
                    self.on_get_block(height)
                return block
        raise RPCConnectionError("block not found", "getblock")

    async def aclose(self) -> None:
        pass

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)


class SleepRecorder:
    """Drop-in for asyncio.sleep that returns immediately and records delays."""

    def __init__(self, on_sleep: Callable[[float], None] | None = None):
        self.delays: list[float] = []
        self.on_sleep = on_sleep

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        if self.on_sleep is not None:
            self.on_sleep(seconds)
