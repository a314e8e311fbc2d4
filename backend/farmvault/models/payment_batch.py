"""HarvestPaymentBatch — audit record of a grouped picker payout.

Created inside the payout transaction before the pickers are marked paid;
each paid picker points back here through payment_batch_id.  Immutable.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, JSON, String, event
from sqlalchemy.orm import Mapped, mapped_column

from farmvault.database import Base
from farmvault.middleware.exceptions import ImmutableRecordError


class HarvestPaymentBatch(Base):
    __tablename__ = "harvest_payment_batches"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    company_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    collection_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("harvest_collections.id"), nullable=False, index=True
    )

    # JSON array of picker IDs actually paid by this batch
    picker_ids: Mapped[list] = mapped_column(JSON, default=list)
    total_amount: Mapped[float] = mapped_column(Float, nullable=False)

    paid_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    created_by: Mapped[str | None] = mapped_column(String(64))


@event.listens_for(HarvestPaymentBatch, "before_update")
def _prevent_batch_update(mapper, connection, target):
    raise ImmutableRecordError("HarvestPaymentBatch", target.id)


@event.listens_for(HarvestPaymentBatch, "before_delete")
def _prevent_batch_delete(mapper, connection, target):
    raise ImmutableRecordError("HarvestPaymentBatch", target.id)
