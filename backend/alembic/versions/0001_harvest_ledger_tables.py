"""Harvest ledger tables — collections, weigh ledger, wallet, cash pool, sales.

Revision ID: 0001
Revises: (none)
Create Date: 2026-10-18

Run with:
    cd backend && alembic upgrade head
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def upgrade() -> None:
    # ── Collections & weigh ledger ───────────────────────────

    op.create_table(
        "harvest_collections",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("company_id", sa.String(64), nullable=False, index=True),
        sa.Column("project_id", sa.String(64), nullable=False, index=True),
        sa.Column("crop_type", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("harvest_date", sa.Date(), nullable=False),
        sa.Column("price_per_kg_picker", sa.Float(), nullable=False),
        sa.Column("price_per_kg_buyer", sa.Float()),
        sa.Column("total_harvest_kg", sa.Float(), server_default="0"),
        sa.Column("total_picker_cost", sa.Float(), server_default="0"),
        sa.Column("total_revenue", sa.Float()),
        sa.Column("profit", sa.Float()),
        sa.Column("status", sa.String(20), server_default="collecting", index=True),
        sa.Column("payout_complete", sa.Boolean(), server_default="false"),
        sa.Column("buyer_paid_at", sa.DateTime()),
        sa.Column("created_by", sa.String(64)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "harvest_payment_batches",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("company_id", sa.String(64), nullable=False, index=True),
        sa.Column("collection_id", sa.String(36), sa.ForeignKey("harvest_collections.id"), nullable=False, index=True),
        sa.Column("picker_ids", sa.JSON(), server_default="[]"),
        sa.Column("total_amount", sa.Float(), nullable=False),
        sa.Column("paid_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("created_by", sa.String(64)),
    )

    op.create_table(
        "harvest_pickers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("company_id", sa.String(64), nullable=False, index=True),
        sa.Column("collection_id", sa.String(36), sa.ForeignKey("harvest_collections.id"), nullable=False, index=True),
        sa.Column("picker_number", sa.Integer(), nullable=False),
        sa.Column("picker_name", sa.String(255), nullable=False),
        sa.Column("total_kg", sa.Float(), server_default="0"),
        sa.Column("total_pay", sa.Float(), server_default="0"),
        sa.Column("is_paid", sa.Boolean(), server_default="false"),
        sa.Column("paid_at", sa.DateTime()),
        sa.Column("payment_batch_id", sa.String(36), sa.ForeignKey("harvest_payment_batches.id")),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("collection_id", "picker_number", name="uq_picker_number_per_collection"),
    )

    op.create_table(
        "picker_weigh_entries",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("company_id", sa.String(64), nullable=False, index=True),
        sa.Column("picker_id", sa.String(36), sa.ForeignKey("harvest_pickers.id"), nullable=False, index=True),
        sa.Column("collection_id", sa.String(36), sa.ForeignKey("harvest_collections.id"), nullable=False, index=True),
        sa.Column("weight_kg", sa.Float(), nullable=False),
        sa.Column("trip_number", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("recorded_by", sa.String(64)),
        sa.Column("recorded_at", sa.DateTime(), server_default=sa.func.now()),
    )

    # ── Cash ─────────────────────────────────────────────────

    op.create_table(
        "harvest_cash_pools",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("collection_id", sa.String(36), sa.ForeignKey("harvest_collections.id"), nullable=False, unique=True),
        sa.Column("project_id", sa.String(64), nullable=False),
        sa.Column("crop_type", sa.String(64), nullable=False),
        sa.Column("company_id", sa.String(64), nullable=False, index=True),
        sa.Column("cash_received", sa.Float(), server_default="0"),
        sa.Column("total_paid_out", sa.Float(), server_default="0"),
        sa.Column("remaining_balance", sa.Float(), server_default="0"),
        sa.Column("source", sa.String(100)),
        sa.Column("received_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("received_by", sa.String(255)),
    )

    op.create_table(
        "harvest_wallets",
        sa.Column("id", sa.String(200), primary_key=True),
        sa.Column("company_id", sa.String(64), nullable=False, index=True),
        sa.Column("project_id", sa.String(64), nullable=False),
        sa.Column("crop_type", sa.String(64), nullable=False),
        sa.Column("cash_received_total", sa.Float(), server_default="0"),
        sa.Column("cash_paid_out_total", sa.Float(), server_default="0"),
        sa.Column("current_balance", sa.Float(), server_default="0"),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.Column("created_by", sa.String(64)),
        sa.Column("updated_by", sa.String(64)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("last_updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint("current_balance >= 0", name="ck_wallet_balance_non_negative"),
    )

    op.create_table(
        "collection_cash_usage",
        sa.Column("id", sa.String(255), primary_key=True),
        sa.Column("company_id", sa.String(64), nullable=False, index=True),
        sa.Column("project_id", sa.String(64), nullable=False),
        sa.Column("crop_type", sa.String(64), nullable=False),
        sa.Column("wallet_id", sa.String(200), sa.ForeignKey("harvest_wallets.id"), nullable=False, index=True),
        sa.Column("collection_id", sa.String(36), sa.ForeignKey("harvest_collections.id"), nullable=False),
        sa.Column("total_deducted", sa.Float(), server_default="0"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("last_updated_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "harvest_wallet_payments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("company_id", sa.String(64), nullable=False, index=True),
        sa.Column("project_id", sa.String(64), nullable=False),
        sa.Column("crop_type", sa.String(64), nullable=False),
        sa.Column("wallet_id", sa.String(200), sa.ForeignKey("harvest_wallets.id"), nullable=False, index=True),
        sa.Column("collection_id", sa.String(36), sa.ForeignKey("harvest_collections.id"), nullable=False, index=True),
        sa.Column("picker_id", sa.String(36)),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("created_by", sa.String(64)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    # ── Sales ledger ─────────────────────────────────────────

    op.create_table(
        "harvests",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("company_id", sa.String(64), nullable=False, index=True),
        sa.Column("project_id", sa.String(64), nullable=False, index=True),
        sa.Column("crop_type", sa.String(64), nullable=False),
        sa.Column("quantity", sa.Float(), nullable=False),
        sa.Column("unit", sa.String(20), server_default="kg"),
        sa.Column("quality", sa.String(1), server_default="A"),
        sa.Column("destination", sa.String(20)),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column("farm_pricing_mode", sa.String(20)),
        sa.Column("farm_price_unit_type", sa.String(20)),
        sa.Column("farm_total_price", sa.Float()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "sales",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("company_id", sa.String(64), nullable=False, index=True),
        sa.Column("project_id", sa.String(64), nullable=False, index=True),
        sa.Column("crop_type", sa.String(64), nullable=False),
        sa.Column("harvest_id", sa.String(36), sa.ForeignKey("harvests.id"), nullable=False),
        sa.Column("collection_id", sa.String(36), sa.ForeignKey("harvest_collections.id"), index=True),
        sa.Column("buyer_name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Float(), nullable=False),
        sa.Column("unit", sa.String(20), server_default="kg"),
        sa.Column("unit_price", sa.Float(), nullable=False),
        sa.Column("total_amount", sa.Float(), nullable=False),
        sa.Column("status", sa.String(20), server_default="pending"),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    # ── Audit ────────────────────────────────────────────────

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("company_id", sa.String(64), nullable=False, index=True),
        sa.Column("user_id", sa.String(64), nullable=False, index=True),
        sa.Column("user_name", sa.String(200), nullable=False),
        sa.Column("action", sa.String(50), nullable=False, index=True),
        sa.Column("entity_type", sa.String(50), nullable=False, index=True),
        sa.Column("entity_id", sa.String(200)),
        sa.Column("summary", sa.Text()),
        sa.Column("details", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False, index=True),
    )


def downgrade() -> None:
    for table in (
        "activity_logs",
        "sales",
        "harvests",
        "harvest_wallet_payments",
        "collection_cash_usage",
        "harvest_wallets",
        "harvest_cash_pools",
        "picker_weigh_entries",
        "harvest_pickers",
        "harvest_payment_batches",
        "harvest_collections",
    ):
        op.drop_table(table)
