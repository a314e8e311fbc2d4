"""Harvest wallet — the shared cash balance funding picker payouts.

One wallet per (company, project, crop), drawn on by every collection of
that crop.  Every function here runs inside the caller's transaction
(see HarvestLedger + utils.transactions.run_in_transaction) and follows
the same shape:

    1. read the wallet FOR UPDATE, plus whatever else the decision needs
    2. verify (exists, balance >= required) — raise before any write
    3. write wallet, usage record, audit rows and pickers together

Two payouts racing on the same wallet cannot both spend the same balance:
the row lock serializes them on PostgreSQL, and the wallet's version_id
column makes the loser's UPDATE match no row (StaleDataError) anywhere
else.  The loser is re-run from step 1 against the new balance.  Pickers
carry the same version guard, so a picker paid twice at once (two
payouts, or a payout and a cash mark) is caught even when the wallet
writes themselves do not collide.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from farmvault.context import Actor, WalletKey
from farmvault.middleware.exceptions import (
    InsufficientFundsError,
    ValidationError,
    WalletNotFoundError,
)
from farmvault.models.harvest_collection import HarvestCollection
from farmvault.models.payment_batch import HarvestPaymentBatch
from farmvault.models.picker import HarvestPicker
from farmvault.models.wallet import (
    CollectionCashUsage,
    HarvestWallet,
    HarvestWalletPayment,
    usage_id_for,
)
from farmvault.utils.transactions import lock_for_update

logger = logging.getLogger("farmvault.wallet")


@dataclass
class BatchPayoutResult:
    batch: HarvestPaymentBatch
    wallet: HarvestWallet
    total_amount: float
    paid_picker_ids: list[str] = field(default_factory=list)
    # Unknown, already paid, or zero-pay pickers left out of the batch
    skipped_picker_ids: list[str] = field(default_factory=list)


def validate_amount(amount: float, what: str = "Amount") -> float:
    if amount is None or not math.isfinite(amount) or amount <= 0:
        raise ValidationError(f"{what} must be greater than 0")
    return float(amount)


def validate_key(key: WalletKey) -> None:
    if not key.company_id or not key.project_id or not key.crop_type:
        raise ValidationError("company_id, project_id and crop_type are required")


def ensure_collection_in_scope(collection: HarvestCollection, key: WalletKey) -> None:
    """A collection may only draw on its own crop's wallet."""
    if (
        collection.company_id != key.company_id
        or collection.project_id != key.project_id
        or collection.crop_type != key.crop_type
    ):
        raise ValidationError(
            f"Collection {collection.id} does not belong to wallet {key.wallet_id}"
        )


async def load_wallet(
    db: AsyncSession, key: WalletKey, *, for_update: bool = False
) -> HarvestWallet | None:
    stmt = select(HarvestWallet).where(HarvestWallet.id == key.wallet_id)
    if for_update:
        stmt = lock_for_update(stmt)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def load_usage(
    db: AsyncSession, key: WalletKey, collection_id: str
) -> CollectionCashUsage | None:
    return await db.get(CollectionCashUsage, usage_id_for(key.wallet_id, collection_id))


# ── Top-up ───────────────────────────────────────────────────

async def credit_wallet(
    db: AsyncSession, actor: Actor, key: WalletKey, amount: float
) -> HarvestWallet:
    """Create the wallet, or add `amount` to what it has received."""
    validate_key(key)
    amount = validate_amount(amount, "Top up amount")
    now = datetime.utcnow()

    wallet = await load_wallet(db, key, for_update=True)
    if wallet is None:
        wallet = HarvestWallet(
            id=key.wallet_id,
            company_id=key.company_id,
            project_id=key.project_id,
            crop_type=key.crop_type,
            cash_received_total=amount,
            cash_paid_out_total=0.0,
            current_balance=amount,
            created_by=actor.id,
            updated_by=actor.id,
            created_at=now,
            last_updated_at=now,
        )
        db.add(wallet)
    else:
        wallet.cash_received_total = (wallet.cash_received_total or 0.0) + amount
        wallet.current_balance = (wallet.current_balance or 0.0) + amount
        wallet.updated_by = actor.id
        wallet.last_updated_at = now
    await db.flush()
    return wallet


# ── Debit ────────────────────────────────────────────────────

async def debit_wallet(
    db: AsyncSession,
    actor: Actor,
    key: WalletKey,
    collection_id: str,
    amount: float,
) -> HarvestWallet:
    """Deduct `amount` for a collection, or raise with nothing written."""
    wallet = await load_wallet(db, key, for_update=True)
    if wallet is None:
        raise WalletNotFoundError(key.wallet_id)

    balance = wallet.current_balance or 0.0
    if balance < amount:
        raise InsufficientFundsError(key.wallet_id, balance, amount)

    usage = await load_usage(db, key, collection_id)

    now = datetime.utcnow()
    wallet.current_balance = balance - amount
    wallet.cash_paid_out_total = (wallet.cash_paid_out_total or 0.0) + amount
    wallet.updated_by = actor.id
    wallet.last_updated_at = now

    if usage is None:
        db.add(CollectionCashUsage(
            id=usage_id_for(key.wallet_id, collection_id),
            company_id=key.company_id,
            project_id=key.project_id,
            crop_type=key.crop_type,
            wallet_id=key.wallet_id,
            collection_id=collection_id,
            total_deducted=amount,
            created_at=now,
            last_updated_at=now,
        ))
    else:
        usage.total_deducted = (usage.total_deducted or 0.0) + amount
        usage.last_updated_at = now

    await db.flush()
    return wallet


async def apply_cash_payment(
    db: AsyncSession,
    actor: Actor,
    key: WalletKey,
    collection: HarvestCollection,
    amount: float,
    picker_id: str | None = None,
) -> HarvestWalletPayment:
    """Single or ad-hoc payout from the wallet, with its audit row."""
    validate_key(key)
    amount = validate_amount(amount, "Payout amount")
    ensure_collection_in_scope(collection, key)

    await debit_wallet(db, actor, key, collection.id, amount)
    payment = HarvestWalletPayment(
        company_id=key.company_id,
        project_id=key.project_id,
        crop_type=key.crop_type,
        wallet_id=key.wallet_id,
        collection_id=collection.id,
        picker_id=picker_id,
        amount=amount,
        created_by=actor.id,
    )
    db.add(payment)
    await db.flush()
    return payment


async def pay_picker(
    db: AsyncSession,
    actor: Actor,
    key: WalletKey,
    collection: HarvestCollection,
    picker: HarvestPicker,
) -> HarvestWalletPayment:
    """Pay one picker's full total_pay from the wallet and mark them paid.

    The caller locks the wallet before loading `picker`, so the paid check
    below sees any payout that committed first.
    """
    if picker.collection_id != collection.id:
        raise ValidationError(f"Picker {picker.id} is not in collection {collection.id}")
    if picker.is_paid:
        raise ValidationError(f"Picker #{picker.picker_number} is already paid")
    if not picker.total_pay or picker.total_pay <= 0:
        raise ValidationError(f"Picker #{picker.picker_number} has nothing to pay")

    payment = await apply_cash_payment(
        db, actor, key, collection, picker.total_pay, picker_id=picker.id
    )
    picker.is_paid = True
    picker.paid_at = payment.created_at or datetime.utcnow()
    await db.flush()
    return payment


async def pay_pickers_batch(
    db: AsyncSession,
    actor: Actor,
    key: WalletKey,
    collection: HarvestCollection,
    picker_ids: list[str],
) -> BatchPayoutResult:
    """Pay every unpaid, non-zero picker among `picker_ids` as one unit.

    Already-paid, zero-pay and unknown pickers are skipped (and reported
    back); if nothing is left to pay the whole call is rejected.
    """
    validate_key(key)
    ensure_collection_in_scope(collection, key)
    requested = list(dict.fromkeys(pid for pid in picker_ids or [] if pid))
    if not requested:
        raise ValidationError("pickerIds must contain at least one id")

    wallet = await load_wallet(db, key, for_update=True)
    if wallet is None:
        raise WalletNotFoundError(key.wallet_id)

    result = await db.execute(
        lock_for_update(select(HarvestPicker).where(HarvestPicker.id.in_(requested)))
        .execution_options(populate_existing=True)
    )
    found = {p.id: p for p in result.scalars().all()}

    foreign = [pid for pid, p in found.items() if p.collection_id != collection.id]
    if foreign:
        raise ValidationError(
            f"Pickers not in collection {collection.id}: {', '.join(foreign)}"
        )

    to_pay: list[HarvestPicker] = []
    skipped: list[str] = []
    for pid in requested:
        picker = found.get(pid)
        if picker is None or picker.is_paid or not picker.total_pay or picker.total_pay <= 0:
            skipped.append(pid)
        else:
            to_pay.append(picker)

    if not to_pay:
        raise ValidationError("All selected pickers are already paid or have zero amount")

    total_amount = math.fsum(p.total_pay for p in to_pay)
    wallet = await debit_wallet(db, actor, key, collection.id, total_amount)

    now = datetime.utcnow()
    batch = HarvestPaymentBatch(
        company_id=key.company_id,
        collection_id=collection.id,
        picker_ids=[p.id for p in to_pay],
        total_amount=total_amount,
        paid_at=now,
        created_by=actor.id,
    )
    db.add(batch)
    await db.flush()

    for picker in to_pay:
        picker.is_paid = True
        picker.paid_at = now
        picker.payment_batch_id = batch.id
    await db.flush()

    if skipped:
        logger.info(
            "Batch %s for collection %s skipped %d picker(s): %s",
            batch.id, collection.id, len(skipped), ", ".join(skipped),
        )

    return BatchPayoutResult(
        batch=batch,
        wallet=wallet,
        total_amount=total_amount,
        paid_picker_ids=[p.id for p in to_pay],
        skipped_picker_ids=skipped,
    )
