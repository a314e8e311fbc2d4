"""Settlement engine — collection lifecycle and buyer settlement.

    collecting ──► sold ──► closed
         └───────────────────▲

- sold:    a buyer price is recorded; revenue and profit are computed
           from the latest aggregated totals.  No picker needs to be paid.
- closed:  the buyer has paid.  Only allowed once every picker in the
           collection is paid (UnpaidPickersError otherwise, nothing written).

The first closure of a collection whose crop emits sales writes one
harvest and one completed sale into the sales ledger, in the same
transaction.  buyer_paid_at doubles as the "already emitted" marker, so
confirming a closure again never emits twice.

payout_complete is informational: refresh_collection_status() persists
the flag and reports it, without touching `status`.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from farmvault.middleware.exceptions import InvalidTransitionError, UnpaidPickersError, ValidationError
from farmvault.models.harvest_collection import CollectionStatus, HarvestCollection
from farmvault.models.sales import Sale
from farmvault.services.aggregation import (
    collection_pickers,
    recompute_collection_totals,
    settlement_figures,
)
from farmvault.services.sales_ledger import record_collection_sale

logger = logging.getLogger("farmvault.settlement")


class CollectionStateMachine:
    """Allowed status transitions for a harvest collection."""

    VALID_TRANSITIONS: dict[str, list[str]] = {
        CollectionStatus.COLLECTING: [CollectionStatus.SOLD, CollectionStatus.CLOSED],
        # sold → sold is a buyer price correction
        CollectionStatus.SOLD: [CollectionStatus.SOLD, CollectionStatus.CLOSED],
        # closed → closed re-confirms the closure; nothing moves backward
        CollectionStatus.CLOSED: [CollectionStatus.CLOSED],
    }

    # Statuses in which pickers may be added and weighed
    WEIGHING_ALLOWED = {CollectionStatus.COLLECTING, CollectionStatus.SOLD}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        allowed = cls.VALID_TRANSITIONS.get(CollectionStatus(from_status), [])
        return CollectionStatus(to_status) in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def can_weigh(cls, status: str) -> bool:
        return CollectionStatus(status) in cls.WEIGHING_ALLOWED

    @classmethod
    def ensure_can_weigh(cls, collection: HarvestCollection) -> None:
        if not cls.can_weigh(collection.status):
            raise InvalidTransitionError(
                collection.status, collection.status,
                reason="collection is closed to new pickers and weigh entries",
            )


@dataclass
class SettlementResult:
    collection: HarvestCollection
    sale: Sale | None = None


async def settle_collection(
    db: AsyncSession,
    collection: HarvestCollection,
    price_per_kg_buyer: float,
    *,
    mark_buyer_paid: bool,
    emitting_crop_types: list[str],
    buyer_name: str,
) -> SettlementResult:
    """Record the buyer price and, when asked, close the collection.

    Runs inside the caller's transaction; raises before writing anything
    if the transition or the all-pickers-paid guard fails.
    """
    if (
        price_per_kg_buyer is None
        or not math.isfinite(price_per_kg_buyer)
        or price_per_kg_buyer < 0
    ):
        raise ValidationError("Buyer price per kg must be zero or positive")

    target = CollectionStatus.CLOSED if mark_buyer_paid else CollectionStatus.SOLD
    CollectionStateMachine.validate_transition(collection.status, target.value)

    pickers = await collection_pickers(db, collection.id)
    if mark_buyer_paid:
        unpaid = [p.id for p in pickers if not p.is_paid]
        if unpaid:
            raise UnpaidPickersError(collection.id, unpaid)

    await recompute_collection_totals(db, collection)
    total_revenue, profit = settlement_figures(collection, price_per_kg_buyer)

    already_paid = collection.buyer_paid_at is not None
    collection.price_per_kg_buyer = price_per_kg_buyer
    collection.total_revenue = total_revenue
    collection.profit = profit
    collection.status = target.value

    sale = None
    if mark_buyer_paid:
        collection.payout_complete = bool(pickers)
        if not already_paid:
            collection.buyer_paid_at = datetime.utcnow()
            emits = (collection.crop_type or "").lower() in {c.lower() for c in emitting_crop_types}
            if emits and collection.total_harvest_kg > 0 and total_revenue > 0:
                sale = await record_collection_sale(db, collection, price_per_kg_buyer, buyer_name)
                logger.info(
                    "Collection %s closed: emitted sale %s (%.1f kg, revenue %.2f)",
                    collection.id, sale.id, collection.total_harvest_kg, total_revenue,
                )

    await db.flush()
    return SettlementResult(collection=collection, sale=sale)


def display_status(collection: HarvestCollection) -> str:
    """Status shown to the UI, folding in payout completeness."""
    if collection.status != CollectionStatus.COLLECTING.value:
        return collection.status
    if collection.payout_complete:
        return CollectionStatus.PAYOUT_COMPLETE.value
    return CollectionStatus.COLLECTING.value


async def refresh_payout_flag(db: AsyncSession, collection: HarvestCollection) -> str:
    """Persist whether every picker is paid and return the display status."""
    pickers = await collection_pickers(db, collection.id)
    collection.payout_complete = bool(pickers) and all(p.is_paid for p in pickers)
    await db.flush()
    return display_status(collection)
