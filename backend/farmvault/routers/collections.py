"""Collection routes — pickers, weigh-ins, payouts, cash pool, settlement.

All routes act for the company in the X-Company-Id header; a collection
belonging to another company is reported as not found.
"""

from fastapi import APIRouter, Depends, Query, status

from farmvault.context import RequestContext, get_request_context
from farmvault.deps import get_ledger
from farmvault.middleware.exceptions import ResourceNotFoundError
from farmvault.models.harvest_collection import HarvestCollection
from farmvault.schemas.collection import (
    BatchPayoutCreate,
    BatchPayoutOut,
    CashPoolOut,
    CashPoolRegister,
    CollectionCreate,
    CollectionOut,
    CollectionStatusOut,
    PaymentBatchOut,
    PickerCreate,
    PickerOut,
    PickerPriceUpdate,
    SettlementOut,
    SettlementRequest,
    WeighEntryCreate,
    WeighEntryOut,
)
from farmvault.schemas.common import PaginatedResponse
from farmvault.schemas.wallet import WalletPaymentOut
from farmvault.services.ledger import HarvestLedger
from farmvault.utils.cache import cached, invalidate_cache

CACHE_PREFIX = "collections"

router = APIRouter()


async def _scoped_collection(
    ledger: HarvestLedger, ctx: RequestContext, collection_id: str
) -> HarvestCollection:
    collection = await ledger.get_collection(collection_id)
    if collection.company_id != ctx.company_id:
        raise ResourceNotFoundError("Collection", collection_id)
    return collection


@cached(prefix=CACHE_PREFIX)
async def _collection_summaries(
    *,
    company_id: str,
    project_id: str | None,
    crop_type: str | None,
    limit: int,
    offset: int,
    _ledger: HarvestLedger,
) -> PaginatedResponse[CollectionOut]:
    collections = await _ledger.list_collections(company_id, project_id, crop_type)
    items = [CollectionOut.model_validate(c) for c in collections[offset:offset + limit]]
    return PaginatedResponse(items=items, total=len(collections), limit=limit, offset=offset)


# ── Collections ──────────────────────────────────────────────

@router.post("/", response_model=CollectionOut, status_code=status.HTTP_201_CREATED)
async def create_collection(
    body: CollectionCreate,
    ctx: RequestContext = Depends(get_request_context),
    ledger: HarvestLedger = Depends(get_ledger),
):
    collection = await ledger.create_collection(
        ctx.actor,
        company_id=ctx.company_id,
        project_id=body.project_id,
        crop_type=body.crop_type,
        name=body.name,
        harvest_date=body.harvest_date,
        price_per_kg_picker=body.price_per_kg_picker,
    )
    await invalidate_cache(ctx.company_id, CACHE_PREFIX)
    return collection


@router.get("/", response_model=PaginatedResponse[CollectionOut])
async def list_collections(
    project_id: str | None = Query(None),
    crop_type: str | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    ctx: RequestContext = Depends(get_request_context),
    ledger: HarvestLedger = Depends(get_ledger),
):
    """Dashboard listing, newest harvest first (cached briefly)."""
    return await _collection_summaries(
        company_id=ctx.company_id,
        project_id=project_id,
        crop_type=crop_type,
        limit=limit,
        offset=offset,
        _ledger=ledger,
    )


@router.get("/{collection_id}", response_model=CollectionOut)
async def get_collection(
    collection_id: str,
    ctx: RequestContext = Depends(get_request_context),
    ledger: HarvestLedger = Depends(get_ledger),
):
    return await _scoped_collection(ledger, ctx, collection_id)


@router.get("/{collection_id}/status", response_model=CollectionStatusOut)
async def refresh_status(
    collection_id: str,
    ctx: RequestContext = Depends(get_request_context),
    ledger: HarvestLedger = Depends(get_ledger),
):
    """Re-derive payout completeness and return the display status."""
    await _scoped_collection(ledger, ctx, collection_id)
    shown = await ledger.refresh_collection_status(collection_id)
    collection = await ledger.get_collection(collection_id)
    return CollectionStatusOut(
        collection_id=collection.id,
        status=collection.status,
        display_status=shown,
        payout_complete=collection.payout_complete,
    )


@router.patch("/{collection_id}/picker-price", response_model=CollectionOut)
async def correct_picker_price(
    collection_id: str,
    body: PickerPriceUpdate,
    ctx: RequestContext = Depends(get_request_context),
    ledger: HarvestLedger = Depends(get_ledger),
):
    await _scoped_collection(ledger, ctx, collection_id)
    collection = await ledger.correct_picker_price(ctx.actor, collection_id, body.price_per_kg_picker)
    await invalidate_cache(ctx.company_id, CACHE_PREFIX)
    return collection


@router.post("/{collection_id}/recompute", response_model=CollectionOut)
async def recompute_collection(
    collection_id: str,
    ctx: RequestContext = Depends(get_request_context),
    ledger: HarvestLedger = Depends(get_ledger),
):
    """Rebuild every picker and the collection totals from the weigh ledger."""
    await _scoped_collection(ledger, ctx, collection_id)
    collection = await ledger.recompute_collection(collection_id)
    await invalidate_cache(ctx.company_id, CACHE_PREFIX)
    return collection


# ── Pickers & weigh-ins ──────────────────────────────────────

@router.post(
    "/{collection_id}/pickers", response_model=PickerOut, status_code=status.HTTP_201_CREATED
)
async def add_picker(
    collection_id: str,
    body: PickerCreate,
    ctx: RequestContext = Depends(get_request_context),
    ledger: HarvestLedger = Depends(get_ledger),
):
    await _scoped_collection(ledger, ctx, collection_id)
    picker = await ledger.add_picker(ctx.actor, collection_id, body.picker_name, body.picker_number)
    await invalidate_cache(ctx.company_id, CACHE_PREFIX)
    return picker


@router.get("/{collection_id}/pickers", response_model=list[PickerOut])
async def list_pickers(
    collection_id: str,
    ctx: RequestContext = Depends(get_request_context),
    ledger: HarvestLedger = Depends(get_ledger),
):
    await _scoped_collection(ledger, ctx, collection_id)
    return await ledger.list_pickers(collection_id)


@router.post(
    "/{collection_id}/weigh-entries",
    response_model=WeighEntryOut,
    status_code=status.HTTP_201_CREATED,
)
async def record_weigh_entry(
    collection_id: str,
    body: WeighEntryCreate,
    ctx: RequestContext = Depends(get_request_context),
    ledger: HarvestLedger = Depends(get_ledger),
):
    await _scoped_collection(ledger, ctx, collection_id)
    entry = await ledger.record_weigh_entry(
        ctx.actor, body.picker_id, collection_id, body.weight_kg, body.trip_number
    )
    await invalidate_cache(ctx.company_id, CACHE_PREFIX)
    return entry


@router.get(
    "/{collection_id}/pickers/{picker_id}/weigh-entries", response_model=list[WeighEntryOut]
)
async def list_weigh_entries(
    collection_id: str,
    picker_id: str,
    ctx: RequestContext = Depends(get_request_context),
    ledger: HarvestLedger = Depends(get_ledger),
):
    await _scoped_collection(ledger, ctx, collection_id)
    entries = await ledger.list_weigh_entries(picker_id)
    return [e for e in entries if e.collection_id == collection_id]


# ── Payouts ──────────────────────────────────────────────────

@router.post("/{collection_id}/pickers/{picker_id}/mark-paid", response_model=PickerOut)
async def mark_picker_cash_paid(
    collection_id: str,
    picker_id: str,
    ctx: RequestContext = Depends(get_request_context),
    ledger: HarvestLedger = Depends(get_ledger),
):
    """Record a picker paid from cash outside the wallet."""
    await _scoped_collection(ledger, ctx, collection_id)
    picker = await ledger.mark_picker_cash_paid(ctx.actor, picker_id, collection_id)
    await invalidate_cache(ctx.company_id, CACHE_PREFIX)
    return picker


@router.post("/{collection_id}/payouts/picker/{picker_id}", response_model=WalletPaymentOut)
async def pay_picker(
    collection_id: str,
    picker_id: str,
    ctx: RequestContext = Depends(get_request_context),
    ledger: HarvestLedger = Depends(get_ledger),
):
    collection = await _scoped_collection(ledger, ctx, collection_id)
    key = ctx.wallet_key(collection.project_id, collection.crop_type)
    payment = await ledger.pay_picker(ctx.actor, key, picker_id, collection_id)
    await invalidate_cache(ctx.company_id, CACHE_PREFIX)
    return payment


@router.post("/{collection_id}/payouts/batch", response_model=BatchPayoutOut)
async def pay_pickers_batch(
    collection_id: str,
    body: BatchPayoutCreate,
    ctx: RequestContext = Depends(get_request_context),
    ledger: HarvestLedger = Depends(get_ledger),
):
    collection = await _scoped_collection(ledger, ctx, collection_id)
    key = ctx.wallet_key(collection.project_id, collection.crop_type)
    outcome = await ledger.pay_pickers_batch(ctx.actor, key, collection_id, body.picker_ids)
    await invalidate_cache(ctx.company_id, CACHE_PREFIX)
    return BatchPayoutOut(
        batch=PaymentBatchOut.model_validate(outcome.batch),
        total_amount=outcome.total_amount,
        wallet_balance=outcome.wallet.current_balance,
        paid_picker_ids=outcome.paid_picker_ids,
        skipped_picker_ids=outcome.skipped_picker_ids,
    )


@router.get("/{collection_id}/payment-batches", response_model=list[PaymentBatchOut])
async def list_payment_batches(
    collection_id: str,
    ctx: RequestContext = Depends(get_request_context),
    ledger: HarvestLedger = Depends(get_ledger),
):
    await _scoped_collection(ledger, ctx, collection_id)
    return await ledger.list_payment_batches(collection_id)


# ── Cash pool ────────────────────────────────────────────────

@router.put("/{collection_id}/cash-pool", response_model=CashPoolOut)
async def register_harvest_cash(
    collection_id: str,
    body: CashPoolRegister,
    ctx: RequestContext = Depends(get_request_context),
    ledger: HarvestLedger = Depends(get_ledger),
):
    """Record the total cash on hand for the collection (replaces the previous figure)."""
    await _scoped_collection(ledger, ctx, collection_id)
    pool = await ledger.register_harvest_cash(
        ctx.actor, collection_id, body.cash_received, body.source
    )
    await invalidate_cache(ctx.company_id, CACHE_PREFIX)
    return pool


@router.get("/{collection_id}/cash-pool", response_model=CashPoolOut)
async def get_cash_pool(
    collection_id: str,
    ctx: RequestContext = Depends(get_request_context),
    ledger: HarvestLedger = Depends(get_ledger),
):
    await _scoped_collection(ledger, ctx, collection_id)
    pool = await ledger.get_cash_pool(collection_id)
    if pool is None:
        raise ResourceNotFoundError("Cash pool", collection_id)
    return pool


# ── Settlement ───────────────────────────────────────────────

@router.post("/{collection_id}/settlement", response_model=SettlementOut)
async def settle_collection(
    collection_id: str,
    body: SettlementRequest,
    ctx: RequestContext = Depends(get_request_context),
    ledger: HarvestLedger = Depends(get_ledger),
):
    """Set the buyer price; with mark_buyer_paid, close the collection."""
    await _scoped_collection(ledger, ctx, collection_id)
    outcome = await ledger.set_buyer_price_and_maybe_close(
        ctx.actor, collection_id, body.price_per_kg_buyer, body.mark_buyer_paid
    )
    await invalidate_cache(ctx.company_id, CACHE_PREFIX)
    return SettlementOut(
        collection=CollectionOut.model_validate(outcome.collection),
        sale_id=outcome.sale.id if outcome.sale else None,
    )

