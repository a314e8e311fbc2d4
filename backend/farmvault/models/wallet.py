"""Harvest wallet — the single cash balance per (company, project, crop).

Spans every collection of that crop.  Funds all picker payouts, so it is
the one row that is never read-modified outside a guarded transaction:
payouts select it FOR UPDATE and the version_id column makes SQLAlchemy
issue `UPDATE ... WHERE version_id = :seen`, turning a lost update into a
StaleDataError that the caller retries.

Invariant: current_balance == cash_received_total - cash_paid_out_total >= 0
"""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from farmvault.database import Base


def wallet_id_for(company_id: str, project_id: str, crop_type: str) -> str:
    return f"{company_id}_{project_id}_{crop_type}"


def usage_id_for(wallet_id: str, collection_id: str) -> str:
    return f"{wallet_id}_{collection_id}"


class HarvestWallet(Base):
    __tablename__ = "harvest_wallets"
    __table_args__ = (
        CheckConstraint("current_balance >= 0", name="ck_wallet_balance_non_negative"),
    )

    # `${company_id}_${project_id}_${crop_type}`
    id: Mapped[str] = mapped_column(String(200), primary_key=True)
    company_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    project_id: Mapped[str] = mapped_column(String(64), nullable=False)
    crop_type: Mapped[str] = mapped_column(String(64), nullable=False)

    # ── Balance ──────────────────────────────────────────────
    cash_received_total: Mapped[float] = mapped_column(Float, default=0.0)
    cash_paid_out_total: Mapped[float] = mapped_column(Float, default=0.0)
    current_balance: Mapped[float] = mapped_column(Float, default=0.0)

    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # ── Metadata ─────────────────────────────────────────────
    created_by: Mapped[str | None] = mapped_column(String(64))
    updated_by: Mapped[str | None] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    last_updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version_id}


class CollectionCashUsage(Base):
    """How much of the shared wallet one collection has consumed."""

    __tablename__ = "collection_cash_usage"

    # `${wallet_id}_${collection_id}`
    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    company_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    project_id: Mapped[str] = mapped_column(String(64), nullable=False)
    crop_type: Mapped[str] = mapped_column(String(64), nullable=False)
    wallet_id: Mapped[str] = mapped_column(
        String(200), ForeignKey("harvest_wallets.id"), nullable=False, index=True
    )
    collection_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("harvest_collections.id"), nullable=False
    )

    total_deducted: Mapped[float] = mapped_column(Float, default=0.0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    last_updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class HarvestWalletPayment(Base):
    """Audit row for a single (non-batch) wallet payout."""

    __tablename__ = "harvest_wallet_payments"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    company_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    project_id: Mapped[str] = mapped_column(String(64), nullable=False)
    crop_type: Mapped[str] = mapped_column(String(64), nullable=False)
    wallet_id: Mapped[str] = mapped_column(
        String(200), ForeignKey("harvest_wallets.id"), nullable=False, index=True
    )
    collection_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("harvest_collections.id"), nullable=False, index=True
    )
    picker_id: Mapped[str | None] = mapped_column(String(36))

    amount: Mapped[float] = mapped_column(Float, nullable=False)

    created_by: Mapped[str | None] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
