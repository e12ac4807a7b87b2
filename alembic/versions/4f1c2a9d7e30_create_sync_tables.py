"""create_sync_tables

Revision ID: 4f1c2a9d7e30
Revises:
Create Date: 2025-11-03 10:12:41.204517

"""

from typing import Sequence, Union

import sqlalchemy as sa
import sqlmodel

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "4f1c2a9d7e30"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Enum columns store member names (SQLModel default)
sync_status = sa.Enum("NOT_STARTED", "SYNCING", "SYNCED", "ERROR", "PAUSED", name="syncstatus")
transaction_type = sa.Enum(
    "STANDARD",
    "ASSET_CREATE",
    "ASSET_MINT",
    "ASSET_TRANSFER",
    "ASSET_UPDATE",
    "FUTURE",
    name="transactiontype",
)
asset_type = sa.Enum("FUNGIBLE", "NON_FUNGIBLE", name="assettype")
transfer_type = sa.Enum("MINT", "TRANSFER", name="transfertype")
future_type = sa.Enum("RTM", "ASSET", name="futuretype")
future_status = sa.Enum("LOCKED", "UNLOCKED", name="futurestatus")
unlock_reason = sa.Enum("CONFIRMATIONS", "TIME", name="unlockreason")
cache_status = sa.Enum("SUCCESS", "ERROR", name="cachestatus")


def string(length: int) -> sqlmodel.sql.sqltypes.AutoString:
    return sqlmodel.sql.sqltypes.AutoString(length=length)


def upgrade() -> None:
    """Create ingestion, asset, future and IPFS cache tables."""
    op.create_table(
        "sync_state",
        sa.Column("service", string(50), nullable=False),
        sa.Column("current_block", sa.Integer(), nullable=False),
        sa.Column("target_block", sa.Integer(), nullable=False),
        sa.Column("start_block", sa.Integer(), nullable=False),
        sa.Column("blocks_processed", sa.Integer(), nullable=False),
        sa.Column("average_block_time", sa.Float(), nullable=False),
        sa.Column("status", sync_status, nullable=False),
        sa.Column("last_error", string(2000), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("service"),
    )
    op.create_index(op.f("ix_sync_state_status"), "sync_state", ["status"])

    op.create_table(
        "blocks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("height", sa.Integer(), nullable=False),
        sa.Column("hash", string(64), nullable=False),
        sa.Column("previous_hash", string(64), nullable=False),
        sa.Column("merkle_root", string(64), nullable=False),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("difficulty", sa.Float(), nullable=False),
        sa.Column("nonce", sa.Integer(), nullable=False),
        sa.Column("size", sa.Integer(), nullable=False),
        sa.Column("transaction_count", sa.Integer(), nullable=False),
        sa.Column("transactions", sa.JSON(), nullable=True),
        sa.Column("miner", string(64), nullable=True),
        sa.Column("reward", sa.Float(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_blocks_height"), "blocks", ["height"], unique=True)
    op.create_index(op.f("ix_blocks_hash"), "blocks", ["hash"], unique=True)
    op.create_index(op.f("ix_blocks_timestamp"), "blocks", ["timestamp"])
    op.create_index(op.f("ix_blocks_miner"), "blocks", ["miner"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("txid", string(64), nullable=False),
        sa.Column("block_height", sa.Integer(), nullable=False),
        sa.Column("block_hash", string(64), nullable=False),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("size", sa.Integer(), nullable=False),
        sa.Column("fee", sa.Float(), nullable=False),
        sa.Column("inputs", sa.JSON(), nullable=True),
        sa.Column("outputs", sa.JSON(), nullable=True),
        sa.Column("type", transaction_type, nullable=False),
        sa.Column("asset_data", sa.JSON(), nullable=True),
        sa.Column("future_data", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_transactions_txid"), "transactions", ["txid"], unique=True)
    op.create_index(op.f("ix_transactions_block_height"), "transactions", ["block_height"])
    op.create_index(op.f("ix_transactions_timestamp"), "transactions", ["timestamp"])
    op.create_index(op.f("ix_transactions_type"), "transactions", ["type"])

    op.create_table(
        "assets",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("asset_id", string(64), nullable=False),
        sa.Column("name", string(255), nullable=False),
        sa.Column("type", asset_type, nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("created_txid", string(64), nullable=False),
        sa.Column("created_block_height", sa.Integer(), nullable=False),
        sa.Column("creator", string(64), nullable=False),
        sa.Column("current_owner", string(64), nullable=True),
        sa.Column("is_unique", sa.Boolean(), nullable=False),
        sa.Column("max_mint_count", sa.Integer(), nullable=False),
        sa.Column("mint_count", sa.Integer(), nullable=False),
        sa.Column("updatable", sa.Boolean(), nullable=False),
        sa.Column("total_supply", sa.Float(), nullable=False),
        sa.Column("circulating_supply", sa.Float(), nullable=False),
        sa.Column("decimals", sa.Integer(), nullable=False),
        sa.Column("transfer_count", sa.Integer(), nullable=False),
        sa.Column("last_transfer", sa.JSON(), nullable=True),
        sa.Column("reference_hash", string(255), nullable=True),
        sa.Column("ipfs_hash", string(255), nullable=True),
        sa.Column("ipfs_verified", sa.Boolean(), nullable=False),
        sa.Column("ipfs_last_checked", sa.DateTime(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("is_sub_asset", sa.Boolean(), nullable=False),
        sa.Column("parent_asset_id", string(64), nullable=True),
        sa.Column("parent_asset_name", string(255), nullable=True),
        sa.Column("sub_asset_name", string(255), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_assets_asset_id"), "assets", ["asset_id"], unique=True)
    op.create_index(op.f("ix_assets_name"), "assets", ["name"])
    op.create_index(op.f("ix_assets_type"), "assets", ["type"])
    op.create_index(op.f("ix_assets_created_at"), "assets", ["created_at"])
    op.create_index(op.f("ix_assets_creator"), "assets", ["creator"])
    op.create_index(op.f("ix_assets_current_owner"), "assets", ["current_owner"])
    op.create_index(op.f("ix_assets_ipfs_hash"), "assets", ["ipfs_hash"])
    op.create_index(op.f("ix_assets_is_sub_asset"), "assets", ["is_sub_asset"])
    op.create_index(op.f("ix_assets_parent_asset_id"), "assets", ["parent_asset_id"])

    op.create_table(
        "asset_transfers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("txid", string(64), nullable=False),
        sa.Column("asset_id", string(255), nullable=False),
        sa.Column("asset_name", string(255), nullable=False),
        sa.Column("from_address", string(64), nullable=True),
        sa.Column("to_address", string(64), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("type", transfer_type, nullable=False),
        sa.Column("block_height", sa.Integer(), nullable=False),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "txid", "asset_name", "to_address", name="uq_asset_transfer_txid_asset_to"
        ),
    )
    for column in (
        "txid",
        "asset_id",
        "asset_name",
        "from_address",
        "to_address",
        "type",
        "block_height",
        "timestamp",
    ):
        op.create_index(op.f(f"ix_asset_transfers_{column}"), "asset_transfers", [column])

    op.create_table(
        "future_outputs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("txid", string(64), nullable=False),
        sa.Column("vout", sa.Integer(), nullable=False),
        sa.Column("type", future_type, nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("amount_sat", sa.BigInteger(), nullable=True),
        sa.Column("asset_id", string(64), nullable=True),
        sa.Column("asset_name", string(255), nullable=True),
        sa.Column("recipient", string(64), nullable=False),
        sa.Column("maturity", sa.Integer(), nullable=False),
        sa.Column("lock_time", sa.Integer(), nullable=False),
        sa.Column("updatable_by_destination", sa.Boolean(), nullable=False),
        sa.Column("created_height", sa.Integer(), nullable=False),
        sa.Column("created_time", sa.DateTime(), nullable=False),
        sa.Column("unlock_height", sa.Integer(), nullable=True),
        sa.Column("unlock_time", sa.DateTime(), nullable=True),
        sa.Column("status", future_status, nullable=False),
        sa.Column("unlocked_at", sa.DateTime(), nullable=True),
        sa.Column("unlocked_by", unlock_reason, nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("txid", "vout", name="uq_future_output_txid_vout"),
    )
    for column in (
        "txid",
        "type",
        "asset_id",
        "asset_name",
        "recipient",
        "created_height",
        "unlock_height",
        "unlock_time",
        "status",
    ):
        op.create_index(op.f(f"ix_future_outputs_{column}"), "future_outputs", [column])

    op.create_table(
        "ipfs_cache",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("hash", string(255), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("status", cache_status, nullable=False),
        sa.Column("error_message", string(1000), nullable=True),
        sa.Column("size", sa.Integer(), nullable=False),
        sa.Column("fetched_at", sa.DateTime(), nullable=False),
        sa.Column("last_accessed_at", sa.DateTime(), nullable=False),
        sa.Column("access_count", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_ipfs_cache_hash"), "ipfs_cache", ["hash"], unique=True)
    op.create_index(op.f("ix_ipfs_cache_last_accessed_at"), "ipfs_cache", ["last_accessed_at"])


def downgrade() -> None:
    """Drop all sync daemon tables and enum types."""
    op.drop_table("ipfs_cache")
    op.drop_table("future_outputs")
    op.drop_table("asset_transfers")
    op.drop_table("assets")
    op.drop_table("transactions")
    op.drop_table("blocks")
    op.drop_table("sync_state")

    bind = op.get_bind()
    for enum in (
        cache_status,
        unlock_reason,
        future_status,
        future_type,
        transfer_type,
        asset_type,
        transaction_type,
        sync_status,
    ):
        enum.drop(bind, checkfirst=True)
