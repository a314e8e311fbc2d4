"""Weigh ledger and picker / collection aggregation.

Totals are a materialized view of the append-only weigh ledger.  They are
always rebuilt from scratch — never incremented — so concurrent or
retried weigh-ins converge on the same numbers no matter the order in
which their recomputes run:

    picker.total_kg          = Σ entry.weight_kg
    picker.total_pay         = round_half_up(total_kg × collection.price_per_kg_picker)
    collection.total_harvest_kg  = Σ picker.total_kg
    collection.total_picker_cost = Σ picker.total_pay

The picker price is read from the collection at recompute time, so a
price correction flows into every picker on the next recompute.
"""

import math

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from farmvault.models.harvest_collection import HarvestCollection
from farmvault.models.picker import HarvestPicker
from farmvault.models.weigh_entry import PickerWeighEntry


def round_half_up(value: float) -> int:
    """Round to the nearest whole currency unit, halves away from zero."""
    if value < 0:
        return -math.floor(-value + 0.5)
    return math.floor(value + 0.5)


def picker_pay(total_kg: float, price_per_kg: float) -> float:
    return float(round_half_up(total_kg * price_per_kg))


def settlement_figures(collection: HarvestCollection, price_per_kg_buyer: float) -> tuple[float, float]:
    """(total_revenue, profit) for the collection's current totals."""
    total_revenue = (collection.total_harvest_kg or 0.0) * price_per_kg_buyer
    profit = total_revenue - (collection.total_picker_cost or 0.0)
    return total_revenue, profit


# ── Weigh ledger ─────────────────────────────────────────────

async def next_trip_number(db: AsyncSession, picker_id: str) -> int:
    result = await db.execute(
        select(func.max(PickerWeighEntry.trip_number)).where(
            PickerWeighEntry.picker_id == picker_id
        )
    )
    return (result.scalar() or 0) + 1


async def picker_weights(db: AsyncSession, picker_id: str) -> list[float]:
    result = await db.execute(
        select(PickerWeighEntry.weight_kg).where(PickerWeighEntry.picker_id == picker_id)
    )
    return [float(w or 0.0) for w in result.scalars().all()]


# ── Aggregators ──────────────────────────────────────────────

async def recompute_picker(
    db: AsyncSession, picker: HarvestPicker, collection: HarvestCollection
) -> HarvestPicker:
    """Rebuild one picker's totals from the full weigh ledger."""
    total_kg = math.fsum(await picker_weights(db, picker.id))
    picker.total_kg = total_kg
    picker.total_pay = picker_pay(total_kg, collection.price_per_kg_picker or 0.0)
    return picker


async def collection_pickers(db: AsyncSession, collection_id: str) -> list[HarvestPicker]:
    result = await db.execute(
        select(HarvestPicker)
        .where(HarvestPicker.collection_id == collection_id)
        .order_by(HarvestPicker.picker_number)
    )
    return list(result.scalars().all())


async def recompute_collection_totals(
    db: AsyncSession, collection: HarvestCollection
) -> HarvestCollection:
    """Rebuild the collection totals from its pickers' aggregated totals.

    Revenue and profit follow along once a buyer price has been set.
    """
    await db.flush()  # pending picker updates must be visible to the query
    pickers = await collection_pickers(db, collection.id)
    collection.total_harvest_kg = math.fsum(p.total_kg or 0.0 for p in pickers)
    collection.total_picker_cost = math.fsum(p.total_pay or 0.0 for p in pickers)
    if collection.price_per_kg_buyer is not None:
        collection.total_revenue, collection.profit = settlement_figures(
            collection, collection.price_per_kg_buyer
        )
    return collection


async def recompute_all_pickers(
    db: AsyncSession, collection: HarvestCollection
) -> list[HarvestPicker]:
    pickers = await collection_pickers(db, collection.id)
    for picker in pickers:
        await recompute_picker(db, picker, collection)
    await recompute_collection_totals(db, collection)
    return pickers
