"""Typed view of verbose (``getblock`` verbosity 2) transactions.

Raw transactions are dicts straight from the node. ``parse_transaction`` turns
one into exactly one member of the ``ParsedTransaction`` union so the router
can dispatch with an exhaustive ``match``.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Any

ASSET_TRANSFER_SCRIPT = "transferasset"

# "<txid>[3]" (single unique unit) or "<txid>[1...50]" (unit range)
_ASSET_ID_SUFFIX = re.compile(r"\[[\d.]+\]$")


class TxType(IntEnum):
    """Special transaction types carried in the ``type`` field."""

    STANDARD = 0
    FUTURE = 7
    NEW_ASSET = 8
    UPDATE_ASSET = 9
    MINT_ASSET = 10


@dataclass(frozen=True)
class BlockContext:
    """Block a transaction is being processed in."""

    height: int
    hash: str
    time: datetime


@dataclass(frozen=True)
class AssetOutput:
    """An output whose script carries an asset payload."""

    n: int
    recipient: str | None
    amount: float
    asset_name: str | None = None
    asset_id: str | None = None  # suffix already stripped
    raw_asset_id: str | None = None


@dataclass(frozen=True)
class NewAssetPayload:
    """``newAssetTx`` payload of a type-8 transaction."""

    name: str
    is_unique: bool = False
    max_mint_count: int = 0
    updatable: bool = False
    reference_hash: str | None = None
    owner_address: str | None = None
    is_root: bool | None = None
    root_id: str | None = None

    @property
    def is_sub_asset(self) -> bool:
        # Only an explicit False marks a sub-asset; absent means root
        return self.is_root is False


@dataclass(frozen=True)
class FuturePayload:
    """``futureTx`` payload of a type-7 transaction."""

    maturity: int = 0
    lock_time: int = 0
    lock_output_index: int | None = None
    updatable_by_destination: bool = False


@dataclass(frozen=True)
class CreateAssetTx:
    tx: dict[str, Any]
    payload: NewAssetPayload | None


@dataclass(frozen=True)
class MintAssetTx:
    tx: dict[str, Any]
    asset_id: str | None


@dataclass(frozen=True)
class UpdateAssetTx:
    tx: dict[str, Any]


@dataclass(frozen=True)
class FutureLockTx:
    tx: dict[str, Any]
    payload: FuturePayload | None


@dataclass(frozen=True)
class TransferTx:
    tx: dict[str, Any]
    outputs: list[AssetOutput] = field(default_factory=list)


@dataclass(frozen=True)
class StandardTx:
    tx: dict[str, Any]


ParsedTransaction = (
    CreateAssetTx | MintAssetTx | UpdateAssetTx | FutureLockTx | TransferTx | StandardTx
)


def strip_asset_id_suffix(asset_id: str) -> str:
    """Drop a trailing ``[n]`` or ``[lo...hi]`` unit selector from an asset id.

    >>> strip_asset_id_suffix("abcd1234[1...50]")
    'abcd1234'
    """
    return _ASSET_ID_SUFFIX.sub("", asset_id)


def output_recipient(vout: dict[str, Any]) -> str | None:
    """First address of an output script, if any."""
    addresses = (vout.get("scriptPubKey") or {}).get("addresses") or []
    return addresses[0] if addresses else None


def first_input_address(tx: dict[str, Any]) -> str | None:
    """Address of the first input that carries one.

    This is a heuristic sender, not a trace of the spent output's owner.
    """
    for vin in tx.get("vin") or []:
        address = vin.get("address")
        if address:
            return address
    return None


def is_asset_output(vout: dict[str, Any]) -> bool:
    script = vout.get("scriptPubKey") or {}
    return script.get("type") == ASSET_TRANSFER_SCRIPT or bool(script.get("asset"))


def has_asset_transfer(tx: dict[str, Any]) -> bool:
    """Whether any output script is marked as an asset transfer."""
    return any(
        (vout.get("scriptPubKey") or {}).get("type") == ASSET_TRANSFER_SCRIPT
        for vout in tx.get("vout") or []
    )


def parse_asset_output(vout: dict[str, Any]) -> AssetOutput | None:
    """Build an AssetOutput, or None when the script has no asset object."""
    asset = (vout.get("scriptPubKey") or {}).get("asset")
    if not asset:
        return None

    raw_asset_id = asset.get("asset_id")
    return AssetOutput(
        n=int(vout.get("n", 0)),
        recipient=output_recipient(vout),
        amount=float(asset.get("amount") or 0),
        asset_name=asset.get("name") or None,
        asset_id=strip_asset_id_suffix(raw_asset_id) if raw_asset_id else None,
        raw_asset_id=raw_asset_id,
    )


def asset_outputs(tx: dict[str, Any]) -> list[AssetOutput]:
    """Every output carrying an asset payload, in output order."""
    parsed = []
    for vout in tx.get("vout") or []:
        if not is_asset_output(vout):
            continue
        output = parse_asset_output(vout)
        if output is not None:
            parsed.append(output)
    return parsed


def _parse_new_asset(data: dict[str, Any] | None) -> NewAssetPayload | None:
    if not data or not data.get("name"):
        return None
    return NewAssetPayload(
        name=str(data["name"]),
        is_unique=bool(data.get("isUnique", False)),
        max_mint_count=int(data.get("maxMintCount") or 0),
        updatable=bool(data.get("updatable", False)),
        reference_hash=data.get("referenceHash") or None,
        owner_address=data.get("ownerAddress"),
        is_root=data.get("isRoot"),
        root_id=data.get("rootId") or None,
    )


def _parse_future(data: dict[str, Any] | None) -> FuturePayload | None:
    if not data:
        return None
    lock_output_index = data.get("lockOutputIndex")
    return FuturePayload(
        maturity=int(data.get("maturity") or 0),
        lock_time=int(data.get("lockTime") or 0),
        lock_output_index=int(lock_output_index) if lock_output_index is not None else None,
        updatable_by_destination=bool(data.get("updatableByDestination", False)),
    )


def parse_transaction(tx: dict[str, Any]) -> ParsedTransaction:
    """Classify a verbose transaction by its integer ``type`` field.

    Unknown types are treated like standard transactions.
    """
    try:
        tx_type = TxType(int(tx.get("type") or 0))
    except ValueError:
        tx_type = TxType.STANDARD

    match tx_type:
        case TxType.NEW_ASSET:
            return CreateAssetTx(tx, _parse_new_asset(tx.get("newAssetTx")))
        case TxType.MINT_ASSET:
            mint_data = tx.get("mintAssetTx") or tx.get("MintAssetTx") or {}
            return MintAssetTx(tx, mint_data.get("assetId") or None)
        case TxType.UPDATE_ASSET:
            return UpdateAssetTx(tx)
        case TxType.FUTURE:
            return FutureLockTx(tx, _parse_future(tx.get("futureTx")))
        case TxType.STANDARD:
            if has_asset_transfer(tx):
                return TransferTx(tx, asset_outputs(tx))
            return StandardTx(tx)
