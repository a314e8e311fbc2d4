"""Writes settled picker collections into the general sales ledger.

One aggregate Harvest plus one matching completed Sale per closed
collection, so harvest-sales reporting picks up the revenue.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from farmvault.models.harvest_collection import HarvestCollection
from farmvault.models.sales import Harvest, Sale


async def record_collection_sale(
    db: AsyncSession,
    collection: HarvestCollection,
    price_per_kg_buyer: float,
    buyer_name: str,
) -> Sale:
    """Add the harvest + sale pair for a closed collection to the session."""
    notes = (
        f"From picker collection: {collection.name}"
        if collection.name else "From picker collection"
    )
    harvest = Harvest(
        company_id=collection.company_id,
        project_id=collection.project_id,
        crop_type=collection.crop_type,
        quantity=collection.total_harvest_kg,
        unit="kg",
        quality="A",
        destination="market",
        harvest_date=collection.harvest_date,
        notes=notes,
        farm_pricing_mode="total",
        farm_price_unit_type="kg",
        farm_total_price=collection.total_revenue,
    )
    db.add(harvest)
    await db.flush()

    sale = Sale(
        company_id=collection.company_id,
        project_id=collection.project_id,
        crop_type=collection.crop_type,
        harvest_id=harvest.id,
        collection_id=collection.id,
        buyer_name=buyer_name,
        quantity=collection.total_harvest_kg,
        unit="kg",
        unit_price=price_per_kg_buyer,
        total_amount=collection.total_revenue,
        status="completed",
        sale_date=collection.harvest_date,
    )
    db.add(sale)
    await db.flush()
    return sale


async def sales_for_collection(db: AsyncSession, collection_id: str) -> list[Sale]:
    result = await db.execute(select(Sale).where(Sale.collection_id == collection_id))
    return list(result.scalars().all())
