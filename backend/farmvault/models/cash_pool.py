"""HarvestCashPool — per-collection cash on hand, for display.

Best-effort mirror of the wallet: registering cash overwrites
cash_received (latest reported total), wallet payouts add to
total_paid_out.  The wallet stays authoritative.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from farmvault.database import Base


class HarvestCashPool(Base):
    __tablename__ = "harvest_cash_pools"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    # At most one pool per collection
    collection_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("harvest_collections.id"), unique=True, nullable=False
    )
    project_id: Mapped[str] = mapped_column(String(64), nullable=False)
    crop_type: Mapped[str] = mapped_column(String(64), nullable=False)
    company_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # ── Amounts ──────────────────────────────────────────────
    cash_received: Mapped[float] = mapped_column(Float, default=0.0)
    total_paid_out: Mapped[float] = mapped_column(Float, default=0.0)
    # max(0, cash_received - total_paid_out)
    remaining_balance: Mapped[float] = mapped_column(Float, default=0.0)

    # ── Provenance ───────────────────────────────────────────
    source: Mapped[str | None] = mapped_column(String(100))
    received_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    received_by: Mapped[str | None] = mapped_column(String(255))
