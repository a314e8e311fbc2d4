"""Harvest wallet routes — balance, top-ups, ad-hoc payouts and per-collection usage.

Balances are always read from the database; nothing here is cached.
"""

from fastapi import APIRouter, Depends, status

from farmvault.context import RequestContext, get_request_context
from farmvault.deps import get_ledger
from farmvault.middleware.exceptions import ResourceNotFoundError, WalletNotFoundError
from farmvault.schemas.wallet import (
    CollectionUsageOut,
    WalletOut,
    WalletPaymentCreate,
    WalletPaymentOut,
    WalletTopUp,
)
from farmvault.services.ledger import HarvestLedger
from farmvault.utils.cache import invalidate_cache

router = APIRouter()


@router.get("/{project_id}/{crop_type}", response_model=WalletOut)
async def get_wallet(
    project_id: str,
    crop_type: str,
    ctx: RequestContext = Depends(get_request_context),
    ledger: HarvestLedger = Depends(get_ledger),
):
    key = ctx.wallet_key(project_id, crop_type)
    wallet = await ledger.get_wallet(key)
    if wallet is None:
        raise WalletNotFoundError(key.wallet_id)
    return wallet


@router.post("/{project_id}/{crop_type}/top-up", response_model=WalletOut)
async def top_up_wallet(
    project_id: str,
    crop_type: str,
    body: WalletTopUp,
    ctx: RequestContext = Depends(get_request_context),
    ledger: HarvestLedger = Depends(get_ledger),
):
    """Add cash to the wallet, creating it on first top-up."""
    return await ledger.top_up_wallet(ctx.actor, ctx.wallet_key(project_id, crop_type), body.amount)


@router.post(
    "/{project_id}/{crop_type}/payments",
    response_model=WalletPaymentOut,
    status_code=status.HTTP_201_CREATED,
)
async def apply_cash_payment(
    project_id: str,
    crop_type: str,
    body: WalletPaymentCreate,
    ctx: RequestContext = Depends(get_request_context),
    ledger: HarvestLedger = Depends(get_ledger),
):
    collection = await ledger.get_collection(body.collection_id)
    if collection.company_id != ctx.company_id:
        raise ResourceNotFoundError("Collection", body.collection_id)
    payment = await ledger.apply_cash_payment(
        ctx.actor,
        ctx.wallet_key(project_id, crop_type),
        body.collection_id,
        body.amount,
        picker_id=body.picker_id,
    )
    await invalidate_cache(ctx.company_id, "collections")
    return payment


@router.get("/{project_id}/{crop_type}/usage", response_model=list[CollectionUsageOut])
async def list_usage(
    project_id: str,
    crop_type: str,
    ctx: RequestContext = Depends(get_request_context),
    ledger: HarvestLedger = Depends(get_ledger),
):
    """How much each collection has drawn from this wallet."""
    return await ledger.list_usage(ctx.wallet_key(project_id, crop_type))
