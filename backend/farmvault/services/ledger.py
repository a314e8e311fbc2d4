"""HarvestLedger — entry point for every collection, payout and settlement call.

Constructed with an async session factory and Settings; nothing in here
reaches for module-level engines or configuration, so tests and scripts
can point a ledger at any database.

Transaction boundaries:
  - wallet top-ups and payouts run through run_in_transaction() and are
    retried on concurrency conflicts; the cash-pool mirror runs after
    the payout has committed, in its own best-effort transaction.
  - record_weigh_entry() commits the weigh entry first, then recomputes
    picker and collection totals together in a second transaction.  A
    failed recompute leaves the entry in place and raises RecomputeError.
  - everything else is a single transaction.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from farmvault.config import Settings
from farmvault.context import Actor, WalletKey
from farmvault.middleware.exceptions import (
    InvalidTransitionError,
    RecomputeError,
    ResourceNotFoundError,
    ValidationError,
)
from farmvault.models.cash_pool import HarvestCashPool
from farmvault.models.harvest_collection import CollectionStatus, HarvestCollection
from farmvault.models.payment_batch import HarvestPaymentBatch
from farmvault.models.picker import HarvestPicker
from farmvault.models.wallet import CollectionCashUsage, HarvestWallet, HarvestWalletPayment
from farmvault.models.weigh_entry import PickerWeighEntry
from farmvault.services import aggregation, cash_pool, settlement, wallet
from farmvault.services.settlement import CollectionStateMachine, SettlementResult
from farmvault.services.wallet import BatchPayoutResult
from farmvault.utils.activity import log_activity
from farmvault.utils.transactions import run_in_transaction

logger = logging.getLogger("farmvault.ledger")


def _finite(value: float | None) -> bool:
    return value is not None and math.isfinite(value)


class HarvestLedger:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], config: Settings):
        self._sessions = session_factory
        self._config = config

    # ── Transaction plumbing ─────────────────────────────────

    async def _atomic(self, work):
        """Run `work(db)` in one retried transaction."""
        return await run_in_transaction(
            self._sessions,
            work,
            attempts=self._config.transaction_retry_attempts,
            backoff_base=self._config.transaction_retry_backoff,
        )

    async def _read(self, work):
        async with self._sessions() as db:
            return await work(db)

    @staticmethod
    async def _get_collection(db: AsyncSession, collection_id: str) -> HarvestCollection:
        if not collection_id:
            raise ValidationError("collection_id is required")
        collection = await db.get(HarvestCollection, collection_id)
        if collection is None:
            raise ResourceNotFoundError("Collection", collection_id)
        return collection

    @staticmethod
    async def _get_picker(
        db: AsyncSession, picker_id: str, *, for_update: bool = False
    ) -> HarvestPicker:
        if not picker_id:
            raise ValidationError("picker_id is required")
        if for_update:
            picker = await db.get(
                HarvestPicker, picker_id, with_for_update=True, populate_existing=True
            )
        else:
            picker = await db.get(HarvestPicker, picker_id)
        if picker is None:
            raise ResourceNotFoundError("Picker", picker_id)
        return picker

    # ── Collections & pickers ────────────────────────────────

    async def create_collection(
        self,
        actor: Actor,
        *,
        company_id: str,
        project_id: str,
        crop_type: str,
        name: str,
        harvest_date: date,
        price_per_kg_picker: float,
    ) -> HarvestCollection:
        if not company_id or not project_id or not crop_type:
            raise ValidationError("company_id, project_id and crop_type are required")
        if not name or not name.strip():
            raise ValidationError("Collection name is required")
        if not _finite(price_per_kg_picker) or price_per_kg_picker < 0:
            raise ValidationError("Picker price per kg must be zero or positive")

        async def _create(db: AsyncSession) -> HarvestCollection:
            collection = HarvestCollection(
                company_id=company_id,
                project_id=project_id,
                crop_type=crop_type,
                name=name.strip(),
                harvest_date=harvest_date,
                price_per_kg_picker=price_per_kg_picker,
                total_harvest_kg=0.0,
                total_picker_cost=0.0,
                status=CollectionStatus.COLLECTING.value,
                payout_complete=False,
                created_by=actor.id,
            )
            db.add(collection)
            await db.flush()
            await log_activity(
                db, actor, company_id=company_id,
                action="created", entity_type="collection", entity_id=collection.id,
                summary=f"Opened collection {collection.name} ({crop_type}) at {price_per_kg_picker}/kg",
            )
            return collection

        return await self._atomic(_create)

    async def add_picker(
        self,
        actor: Actor,
        collection_id: str,
        picker_name: str,
        picker_number: int | None = None,
    ) -> HarvestPicker:
        if not picker_name or not picker_name.strip():
            raise ValidationError("Picker name is required")
        if picker_number is not None and picker_number <= 0:
            raise ValidationError("Picker number must be positive")

        async def _add(db: AsyncSession) -> HarvestPicker:
            collection = await self._get_collection(db, collection_id)
            CollectionStateMachine.ensure_can_weigh(collection)

            result = await db.execute(
                select(HarvestPicker.picker_number).where(
                    HarvestPicker.collection_id == collection.id
                )
            )
            taken = set(result.scalars().all())
            number = picker_number
            if number is None:
                number = max(taken, default=0) + 1
            elif number in taken:
                raise ValidationError(f"Picker number {number} is already used in this collection")

            picker = HarvestPicker(
                company_id=collection.company_id,
                collection_id=collection.id,
                picker_number=number,
                picker_name=picker_name.strip(),
                total_kg=0.0,
                total_pay=0.0,
                is_paid=False,
            )
            db.add(picker)
            await db.flush()
            if collection.payout_complete:
                collection.payout_complete = False
            await log_activity(
                db, actor, company_id=collection.company_id,
                action="created", entity_type="picker", entity_id=picker.id,
                summary=f"Added picker #{number} {picker.picker_name} to {collection.name}",
            )
            return picker

        return await self._atomic(_add)

    async def correct_picker_price(
        self, actor: Actor, collection_id: str, price_per_kg_picker: float
    ) -> HarvestCollection:
        """Change the picker rate before any payout and re-derive every total."""
        if not _finite(price_per_kg_picker) or price_per_kg_picker < 0:
            raise ValidationError("Picker price per kg must be zero or positive")

        async def _correct(db: AsyncSession) -> HarvestCollection:
            collection = await self._get_collection(db, collection_id)
            CollectionStateMachine.ensure_can_weigh(collection)
            pickers = await aggregation.collection_pickers(db, collection.id)
            if any(p.is_paid for p in pickers):
                raise InvalidTransitionError(
                    collection.status, collection.status,
                    reason="picker price cannot change after pickers have been paid",
                )
            previous = collection.price_per_kg_picker
            collection.price_per_kg_picker = price_per_kg_picker
            await aggregation.recompute_all_pickers(db, collection)
            await log_activity(
                db, actor, company_id=collection.company_id,
                action="price_corrected", entity_type="collection", entity_id=collection.id,
                summary=f"Picker price {previous}/kg → {price_per_kg_picker}/kg",
                details={"previous": previous, "new": price_per_kg_picker},
            )
            return collection

        return await self._atomic(_correct)

    async def get_collection(self, collection_id: str) -> HarvestCollection:
        return await self._read(lambda db: self._get_collection(db, collection_id))

    async def list_collections(
        self,
        company_id: str,
        project_id: str | None = None,
        crop_type: str | None = None,
    ) -> list[HarvestCollection]:
        async def _list(db: AsyncSession) -> list[HarvestCollection]:
            stmt = select(HarvestCollection).where(HarvestCollection.company_id == company_id)
            if project_id:
                stmt = stmt.where(HarvestCollection.project_id == project_id)
            if crop_type:
                stmt = stmt.where(HarvestCollection.crop_type == crop_type)
            stmt = stmt.order_by(HarvestCollection.harvest_date.desc(), HarvestCollection.created_at.desc())
            result = await db.execute(stmt)
            return list(result.scalars().all())

        return await self._read(_list)

    async def list_pickers(self, collection_id: str) -> list[HarvestPicker]:
        return await self._read(lambda db: aggregation.collection_pickers(db, collection_id))

    async def list_weigh_entries(self, picker_id: str) -> list[PickerWeighEntry]:
        async def _list(db: AsyncSession) -> list[PickerWeighEntry]:
            result = await db.execute(
                select(PickerWeighEntry)
                .where(PickerWeighEntry.picker_id == picker_id)
                .order_by(PickerWeighEntry.trip_number, PickerWeighEntry.recorded_at)
            )
            return list(result.scalars().all())

        return await self._read(_list)

    async def list_payment_batches(self, collection_id: str) -> list[HarvestPaymentBatch]:
        async def _list(db: AsyncSession) -> list[HarvestPaymentBatch]:
            result = await db.execute(
                select(HarvestPaymentBatch)
                .where(HarvestPaymentBatch.collection_id == collection_id)
                .order_by(HarvestPaymentBatch.paid_at)
            )
            return list(result.scalars().all())

        return await self._read(_list)

    # ── Weigh ledger ─────────────────────────────────────────

    async def record_weigh_entry(
        self,
        actor: Actor,
        picker_id: str,
        collection_id: str,
        weight_kg: float,
        trip_number: int | None = None,
    ) -> PickerWeighEntry:
        if not picker_id or not collection_id:
            raise ValidationError("picker_id and collection_id are required")
        if not _finite(weight_kg) or weight_kg <= 0:
            raise ValidationError("Weight must be greater than 0")
        if trip_number is not None and trip_number <= 0:
            raise ValidationError("Trip number must be positive")

        async def _append(db: AsyncSession) -> PickerWeighEntry:
            collection = await self._get_collection(db, collection_id)
            picker = await self._get_picker(db, picker_id)
            if picker.collection_id != collection.id:
                raise ValidationError(f"Picker {picker_id} is not in collection {collection_id}")
            CollectionStateMachine.ensure_can_weigh(collection)
            if picker.is_paid:
                raise InvalidTransitionError(
                    "paid", "paid",
                    reason=f"picker #{picker.picker_number} is already paid; weigh-ins are closed",
                )

            trip = trip_number or await aggregation.next_trip_number(db, picker.id)
            entry = PickerWeighEntry(
                company_id=collection.company_id,
                picker_id=picker.id,
                collection_id=collection.id,
                weight_kg=float(weight_kg),
                trip_number=trip,
                recorded_by=actor.id,
            )
            db.add(entry)
            await db.flush()
            await log_activity(
                db, actor, company_id=collection.company_id,
                action="weighed", entity_type="picker", entity_id=picker.id,
                summary=f"Picker #{picker.picker_number} trip {trip}: {weight_kg} kg",
                details={"weigh_entry_id": entry.id, "weight_kg": float(weight_kg)},
            )
            return entry

        entry = await self._atomic(_append)

        try:
            await self.recompute_picker_and_collection(picker_id, collection_id)
        except SQLAlchemyError as exc:
            logger.error(
                "Recompute failed after weigh entry %s (picker %s, collection %s): %s",
                entry.id, picker_id, collection_id, exc,
            )
            raise RecomputeError(picker_id, collection_id, entry.id) from exc
        return entry

    async def recompute_picker_and_collection(
        self, picker_id: str, collection_id: str
    ) -> tuple[HarvestPicker, HarvestCollection]:
        """Rebuild one picker and its collection from the weigh ledger, together."""

        async def _recompute(db: AsyncSession) -> tuple[HarvestPicker, HarvestCollection]:
            collection = await self._get_collection(db, collection_id)
            picker = await self._get_picker(db, picker_id)
            await aggregation.recompute_picker(db, picker, collection)
            await aggregation.recompute_collection_totals(db, collection)
            return picker, collection

        return await self._atomic(_recompute)

    async def recompute_collection_totals(self, collection_id: str) -> HarvestCollection:
        """Rebuild collection totals from the pickers' current totals."""

        async def _recompute(db: AsyncSession) -> HarvestCollection:
            collection = await self._get_collection(db, collection_id)
            return await aggregation.recompute_collection_totals(db, collection)

        return await self._atomic(_recompute)

    async def recompute_collection(self, collection_id: str) -> HarvestCollection:
        """Rebuild every picker and the collection totals."""

        async def _recompute(db: AsyncSession) -> HarvestCollection:
            collection = await self._get_collection(db, collection_id)
            await aggregation.recompute_all_pickers(db, collection)
            return collection

        return await self._atomic(_recompute)

    # ── Wallet ───────────────────────────────────────────────

    async def top_up_wallet(self, actor: Actor, key: WalletKey, amount: float) -> HarvestWallet:
        async def _top_up(db: AsyncSession) -> HarvestWallet:
            w = await wallet.credit_wallet(db, actor, key, amount)
            await log_activity(
                db, actor, company_id=key.company_id,
                action="topped_up", entity_type="wallet", entity_id=key.wallet_id,
                summary=f"Added {amount:.2f} to harvest wallet ({key.crop_type})",
                details={"amount": amount, "balance": w.current_balance},
            )
            return w

        w = await self._atomic(_top_up)
        logger.info("Wallet %s topped up by %.2f, balance %.2f", key.wallet_id, amount, w.current_balance)
        return w

    async def get_wallet(self, key: WalletKey) -> HarvestWallet | None:
        return await self._read(lambda db: wallet.load_wallet(db, key))

    async def get_usage(self, key: WalletKey, collection_id: str) -> CollectionCashUsage | None:
        return await self._read(lambda db: wallet.load_usage(db, key, collection_id))

    async def list_usage(self, key: WalletKey) -> list[CollectionCashUsage]:
        async def _list(db: AsyncSession) -> list[CollectionCashUsage]:
            result = await db.execute(
                select(CollectionCashUsage)
                .where(CollectionCashUsage.wallet_id == key.wallet_id)
                .order_by(CollectionCashUsage.last_updated_at.desc())
            )
            return list(result.scalars().all())

        return await self._read(_list)

    async def apply_cash_payment(
        self,
        actor: Actor,
        key: WalletKey,
        collection_id: str,
        amount: float,
        picker_id: str | None = None,
    ) -> HarvestWalletPayment:
        async def _pay(db: AsyncSession) -> HarvestWalletPayment:
            collection = await self._get_collection(db, collection_id)
            payment = await wallet.apply_cash_payment(db, actor, key, collection, amount, picker_id)
            await log_activity(
                db, actor, company_id=key.company_id,
                action="paid", entity_type="wallet", entity_id=key.wallet_id,
                summary=f"Paid out {amount:.2f} for {collection.name}",
                details={"collection_id": collection.id, "picker_id": picker_id, "amount": amount},
            )
            return payment

        payment = await self._atomic(_pay)
        logger.info("Wallet %s paid out %.2f for collection %s", key.wallet_id, payment.amount, collection_id)
        await self._mirror(collection_id, payment.amount)
        return payment

    async def pay_picker(
        self,
        actor: Actor,
        key: WalletKey,
        picker_id: str,
        collection_id: str | None = None,
    ) -> HarvestWalletPayment:
        async def _pay(db: AsyncSession) -> HarvestWalletPayment:
            # Wallet first, then the picker, the same order as a batch payout
            await wallet.load_wallet(db, key, for_update=True)
            picker = await self._get_picker(db, picker_id, for_update=True)
            if collection_id is not None and picker.collection_id != collection_id:
                raise ValidationError(f"Picker {picker_id} is not in collection {collection_id}")
            collection = await self._get_collection(db, picker.collection_id)
            payment = await wallet.pay_picker(db, actor, key, collection, picker)
            await settlement.refresh_payout_flag(db, collection)
            await log_activity(
                db, actor, company_id=key.company_id,
                action="paid", entity_type="picker", entity_id=picker.id,
                summary=f"Paid picker #{picker.picker_number} {picker.picker_name} {payment.amount:.2f}",
                details={"collection_id": collection.id, "amount": payment.amount},
            )
            return payment

        payment = await self._atomic(_pay)
        logger.info("Wallet %s paid picker %s %.2f", key.wallet_id, picker_id, payment.amount)
        await self._mirror(payment.collection_id, payment.amount)
        return payment

    async def pay_pickers_batch(
        self,
        actor: Actor,
        key: WalletKey,
        collection_id: str,
        picker_ids: list[str],
    ) -> BatchPayoutResult:
        async def _pay(db: AsyncSession) -> BatchPayoutResult:
            collection = await self._get_collection(db, collection_id)
            outcome = await wallet.pay_pickers_batch(db, actor, key, collection, picker_ids)
            await settlement.refresh_payout_flag(db, collection)
            await log_activity(
                db, actor, company_id=key.company_id,
                action="batch_paid", entity_type="collection", entity_id=collection.id,
                summary=(
                    f"Paid {len(outcome.paid_picker_ids)} picker(s) {outcome.total_amount:.2f} "
                    f"in batch {outcome.batch.id}"
                ),
                details={
                    "batch_id": outcome.batch.id,
                    "paid": outcome.paid_picker_ids,
                    "skipped": outcome.skipped_picker_ids,
                },
            )
            return outcome

        outcome = await self._atomic(_pay)
        logger.info(
            "Wallet %s paid batch %s: %.2f across %d picker(s)",
            key.wallet_id, outcome.batch.id, outcome.total_amount, len(outcome.paid_picker_ids),
        )
        await self._mirror(collection_id, outcome.total_amount)
        return outcome

    async def mark_picker_cash_paid(
        self, actor: Actor, picker_id: str, collection_id: str | None = None
    ) -> HarvestPicker:
        """Record a picker as paid in cash outside the wallet (no batch, no debit).

        Marking an already paid picker is a no-op.  A wallet payout of the
        same picker committing in between bumps the picker's version, so
        this transaction is re-run and finds the picker paid.
        """

        async def _mark(db: AsyncSession) -> HarvestPicker:
            picker = await self._get_picker(db, picker_id, for_update=True)
            if collection_id is not None and picker.collection_id != collection_id:
                raise ValidationError(f"Picker {picker_id} is not in collection {collection_id}")
            if not picker.is_paid:
                collection = await self._get_collection(db, picker.collection_id)
                picker.is_paid = True
                picker.paid_at = datetime.utcnow()
                await db.flush()
                await settlement.refresh_payout_flag(db, collection)
                await log_activity(
                    db, actor, company_id=picker.company_id,
                    action="paid", entity_type="picker", entity_id=picker.id,
                    summary=f"Marked picker #{picker.picker_number} {picker.picker_name} as cash paid",
                )
            return picker

        return await self._atomic(_mark)

    async def _mirror(self, collection_id: str, amount: float) -> HarvestCashPool | None:
        """Best-effort: reflect a committed payout in the collection's cash pool.

        The wallet already holds the truth; a failure here is logged and the
        pool stays behind until the next payout or registration.
        """
        try:
            return await self._atomic(lambda db: cash_pool.mirror_deduction(db, collection_id, amount))
        except SQLAlchemyError:
            logger.exception("Cash pool mirror failed for collection %s (amount %.2f)", collection_id, amount)
            return None

    # ── Cash pool ────────────────────────────────────────────

    async def register_harvest_cash(
        self,
        actor: Actor,
        collection_id: str,
        cash_received: float,
        source: str | None = None,
    ) -> HarvestCashPool:
        async def _register(db: AsyncSession) -> HarvestCashPool:
            collection = await self._get_collection(db, collection_id)
            pool = await cash_pool.register_cash(db, actor, collection, cash_received, source)
            await log_activity(
                db, actor, company_id=collection.company_id,
                action="cash_registered", entity_type="cash_pool", entity_id=pool.id,
                summary=f"Cash on hand for {collection.name}: {cash_received:.2f}",
                details={"cash_received": cash_received, "source": source},
            )
            return pool

        return await self._atomic(_register)

    async def get_cash_pool(self, collection_id: str) -> HarvestCashPool | None:
        return await self._read(lambda db: cash_pool.get_pool(db, collection_id))

    # ── Settlement ───────────────────────────────────────────

    async def set_buyer_price_and_maybe_close(
        self,
        actor: Actor,
        collection_id: str,
        price_per_kg_buyer: float,
        mark_buyer_paid: bool = False,
    ) -> SettlementResult:
        async def _settle(db: AsyncSession) -> SettlementResult:
            collection = await self._get_collection(db, collection_id)
            outcome = await settlement.settle_collection(
                db,
                collection,
                price_per_kg_buyer,
                mark_buyer_paid=mark_buyer_paid,
                emitting_crop_types=self._config.sale_emitting_crop_types,
                buyer_name=self._config.sale_buyer_name,
            )
            await log_activity(
                db, actor, company_id=collection.company_id,
                action=collection.status, entity_type="collection", entity_id=collection.id,
                summary=(
                    f"{collection.name}: buyer {price_per_kg_buyer}/kg, revenue "
                    f"{collection.total_revenue:.2f}, profit {collection.profit:.2f}"
                ),
                details={"sale_id": outcome.sale.id if outcome.sale else None},
            )
            return outcome

        return await self._atomic(_settle)

    async def refresh_collection_status(self, collection_id: str) -> str:
        async def _refresh(db: AsyncSession) -> str:
            collection = await self._get_collection(db, collection_id)
            return await settlement.refresh_payout_flag(db, collection)

        return await self._atomic(_refresh)
