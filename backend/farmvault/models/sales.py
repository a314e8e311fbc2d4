"""Harvest / Sale — the general sales ledger the settlement engine feeds.

Owned by the wider farm-records application; only the fields the
settlement engine writes are modelled here.
"""

import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, Float, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from farmvault.database import Base


class Harvest(Base):
    __tablename__ = "harvests"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    company_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    project_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    crop_type: Mapped[str] = mapped_column(String(64), nullable=False)

    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String(20), default="kg")
    # A | B | C
    quality: Mapped[str] = mapped_column(String(1), default="A")
    # farm | market
    destination: Mapped[str | None] = mapped_column(String(20))
    harvest_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)

    # ── Farm-side pricing ────────────────────────────────────
    # perUnit | total
    farm_pricing_mode: Mapped[str | None] = mapped_column(String(20))
    farm_price_unit_type: Mapped[str | None] = mapped_column(String(20))
    farm_total_price: Mapped[float | None] = mapped_column(Float)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class Sale(Base):
    __tablename__ = "sales"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    company_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    project_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    crop_type: Mapped[str] = mapped_column(String(64), nullable=False)
    harvest_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("harvests.id"), nullable=False
    )
    # Set when the sale was emitted by closing a picker collection
    collection_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("harvest_collections.id"), index=True
    )

    buyer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String(20), default="kg")
    unit_price: Mapped[float] = mapped_column(Float, nullable=False)
    total_amount: Mapped[float] = mapped_column(Float, nullable=False)
    # pending | partial | completed | cancelled
    status: Mapped[str] = mapped_column(String(20), default="pending")
    sale_date: Mapped[date] = mapped_column("date", Date, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
