"""Per-collection cash pool: register (overwrite) and mirror (accumulate).

Two different semantics:

- register_cash() records the latest *total* cash on hand reported for a
  collection.  Re-registering overwrites cash_received; it does not add.
- mirror_deduction() adds a committed wallet payout to total_paid_out.

Money actually moves through the harvest wallet.  The pool only follows
it for display, and only once cash has been registered for the
collection: without a pool the mirror is a no-op.
"""

import math
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from farmvault.context import Actor
from farmvault.middleware.exceptions import ValidationError
from farmvault.models.cash_pool import HarvestCashPool
from farmvault.models.harvest_collection import HarvestCollection
from farmvault.utils.transactions import lock_for_update


def remaining(cash_received: float, total_paid_out: float) -> float:
    return max(0.0, (cash_received or 0.0) - (total_paid_out or 0.0))


async def get_pool(db: AsyncSession, collection_id: str, *, for_update: bool = False) -> HarvestCashPool | None:
    stmt = select(HarvestCashPool).where(HarvestCashPool.collection_id == collection_id)
    if for_update:
        stmt = lock_for_update(stmt)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def register_cash(
    db: AsyncSession,
    actor: Actor,
    collection: HarvestCollection,
    cash_received: float,
    source: str | None,
) -> HarvestCashPool:
    if cash_received is None or not math.isfinite(cash_received) or cash_received < 0:
        raise ValidationError("Cash received must be zero or positive")

    pool = await get_pool(db, collection.id, for_update=True)
    if pool is None:
        pool = HarvestCashPool(
            collection_id=collection.id,
            project_id=collection.project_id,
            crop_type=collection.crop_type,
            company_id=collection.company_id,
            cash_received=cash_received,
            total_paid_out=0.0,
            remaining_balance=cash_received,
            source=source,
            received_by=actor.name,
        )
        db.add(pool)
    else:
        pool.cash_received = cash_received
        pool.remaining_balance = remaining(cash_received, pool.total_paid_out)
        pool.source = source
        pool.received_by = actor.name
        pool.received_at = datetime.utcnow()
    await db.flush()
    return pool


async def mirror_deduction(db: AsyncSession, collection_id: str, amount: float) -> HarvestCashPool | None:
    if amount <= 0:
        return None
    pool = await get_pool(db, collection_id, for_update=True)
    if pool is None:
        return None
    pool.total_paid_out = (pool.total_paid_out or 0.0) + amount
    pool.remaining_balance = remaining(pool.cash_received, pool.total_paid_out)
    await db.flush()
    return pool
