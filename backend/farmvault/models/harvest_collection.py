"""HarvestCollection — one day's picking event for a project/crop.

The unit of settlement.  Pickers are weighed into it, paid from the shared
harvest wallet, and once every picker is paid a buyer price can close it.

Lifecycle:  collecting → sold → closed
(payout_complete is informational only, see services.settlement)
"""

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from farmvault.database import Base


class CollectionStatus(str, enum.Enum):
    COLLECTING = "collecting"
    SOLD = "sold"
    CLOSED = "closed"
    # Derived for display, never written to `status`
    PAYOUT_COMPLETE = "payout_complete"


class HarvestCollection(Base):
    __tablename__ = "harvest_collections"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    # ── Scope ────────────────────────────────────────────────
    company_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    project_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    crop_type: Mapped[str] = mapped_column(String(64), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    harvest_date: Mapped[date] = mapped_column(Date, nullable=False)

    # ── Pricing ──────────────────────────────────────────────
    price_per_kg_picker: Mapped[float] = mapped_column(Float, nullable=False)
    price_per_kg_buyer: Mapped[float | None] = mapped_column(Float)

    # ── Derived totals (recomputed, never edited directly) ───
    total_harvest_kg: Mapped[float] = mapped_column(Float, default=0.0)
    total_picker_cost: Mapped[float] = mapped_column(Float, default=0.0)
    total_revenue: Mapped[float | None] = mapped_column(Float)
    profit: Mapped[float | None] = mapped_column(Float)

    # ── Settlement ───────────────────────────────────────────
    # collecting | sold | closed
    status: Mapped[str] = mapped_column(
        String(20), default=CollectionStatus.COLLECTING.value, index=True
    )
    payout_complete: Mapped[bool] = mapped_column(Boolean, default=False)
    buyer_paid_at: Mapped[datetime | None] = mapped_column(DateTime)

    # ── Metadata ─────────────────────────────────────────────
    created_by: Mapped[str | None] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
