"""PickerWeighEntry — one weight measurement for one picker.

Append-only: the sole input to picker/collection recomputation.  The ORM
listeners below refuse UPDATE and DELETE flushes.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, event
from sqlalchemy.orm import Mapped, mapped_column

from farmvault.database import Base
from farmvault.middleware.exceptions import ImmutableRecordError


class PickerWeighEntry(Base):
    __tablename__ = "picker_weigh_entries"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    company_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    picker_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("harvest_pickers.id"), nullable=False, index=True
    )
    collection_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("harvest_collections.id"), nullable=False, index=True
    )

    weight_kg: Mapped[float] = mapped_column(Float, nullable=False)
    trip_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    recorded_by: Mapped[str | None] = mapped_column(String(64))
    recorded_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


@event.listens_for(PickerWeighEntry, "before_update")
def _prevent_weigh_entry_update(mapper, connection, target):
    raise ImmutableRecordError("PickerWeighEntry", target.id)


@event.listens_for(PickerWeighEntry, "before_delete")
def _prevent_weigh_entry_delete(mapper, connection, target):
    raise ImmutableRecordError("PickerWeighEntry", target.id)
