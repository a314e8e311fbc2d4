"""HarvestPicker — a person picking within one collection.

total_kg / total_pay are a materialized view of the weigh ledger:
total_pay == round_half_up(total_kg * collection.price_per_kg_picker).

is_paid is written by wallet payouts and cash marks alike, so the row
carries a version_id like the wallet: whichever payout commits second
finds the version moved and is re-run against the paid picker.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from farmvault.database import Base


class HarvestPicker(Base):
    __tablename__ = "harvest_pickers"
    __table_args__ = (
        UniqueConstraint("collection_id", "picker_number", name="uq_picker_number_per_collection"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    company_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    collection_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("harvest_collections.id"), nullable=False, index=True
    )

    picker_number: Mapped[int] = mapped_column(Integer, nullable=False)
    picker_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # ── Derived ──────────────────────────────────────────────
    total_kg: Mapped[float] = mapped_column(Float, default=0.0)
    total_pay: Mapped[float] = mapped_column(Float, default=0.0)

    # ── Payout ───────────────────────────────────────────────
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime)
    # Null for individual payouts; set when paid as part of a batch
    payment_batch_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("harvest_payment_batches.id")
    )

    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version_id}
