"""Harvest wallet and payout tests."""

from datetime import date

import pytest
from sqlalchemy import select

from farmvault.context import WalletKey
from farmvault.middleware.exceptions import (
    ImmutableRecordError,
    InsufficientFundsError,
    ValidationError,
    WalletNotFoundError,
)
from farmvault.models import HarvestPaymentBatch, HarvestWalletPayment


@pytest.mark.integration
@pytest.mark.asyncio
class TestTopUp:
    async def test_first_top_up_creates_wallet(self, ledger, actor, wallet_key):
        wallet = await ledger.top_up_wallet(actor, wallet_key, 10000)
        assert wallet.id == "company-1_project-1_french-beans"
        assert wallet.current_balance == 10000
        assert wallet.cash_received_total == 10000
        assert wallet.cash_paid_out_total == 0
        assert wallet.created_by == actor.id

    async def test_top_ups_accumulate(self, ledger, actor, wallet_key):
        await ledger.top_up_wallet(actor, wallet_key, 3000)
        wallet = await ledger.top_up_wallet(actor, wallet_key, 2500)
        assert wallet.current_balance == 5500
        assert wallet.cash_received_total == 5500

    @pytest.mark.parametrize("amount", [0, -10, float("nan"), float("inf")])
    async def test_invalid_amount_rejected(self, ledger, actor, wallet_key, amount):
        with pytest.raises(ValidationError):
            await ledger.top_up_wallet(actor, wallet_key, amount)
        assert await ledger.get_wallet(wallet_key) is None

    async def test_missing_scope_rejected(self, ledger, actor):
        with pytest.raises(ValidationError):
            await ledger.top_up_wallet(actor, WalletKey("company-1", "", "french-beans"), 100)


@pytest.mark.integration
@pytest.mark.asyncio
class TestSinglePayout:
    async def test_pay_picker_debits_wallet_and_marks_paid(
        self, ledger, actor, wallet_key, collection, weighed_picker
    ):
        await ledger.top_up_wallet(actor, wallet_key, 1000)
        p1 = await weighed_picker(collection, "Wanjiru", 25)

        payment = await ledger.pay_picker(actor, wallet_key, p1.id)

        assert payment.amount == 500
        assert payment.picker_id == p1.id
        wallet = await ledger.get_wallet(wallet_key)
        assert wallet.current_balance == 500
        assert wallet.cash_paid_out_total == 500
        usage = await ledger.get_usage(wallet_key, collection.id)
        assert usage.total_deducted == 500
        (picker,) = await ledger.list_pickers(collection.id)
        assert picker.is_paid
        assert picker.paid_at is not None
        assert picker.payment_batch_id is None

    async def test_paying_twice_rejected(
        self, ledger, actor, wallet_key, collection, weighed_picker
    ):
        await ledger.top_up_wallet(actor, wallet_key, 1000)
        p1 = await weighed_picker(collection, "Wanjiru", 25)
        await ledger.pay_picker(actor, wallet_key, p1.id)

        with pytest.raises(ValidationError):
            await ledger.pay_picker(actor, wallet_key, p1.id)
        wallet = await ledger.get_wallet(wallet_key)
        assert wallet.current_balance == 500

    async def test_picker_from_another_collection_rejected(
        self, ledger, actor, wallet_key, collection, weighed_picker
    ):
        sibling = await ledger.create_collection(
            actor,
            company_id="company-1",
            project_id="project-1",
            crop_type="french-beans",
            name="Block B",
            harvest_date=date(2026, 3, 14),
            price_per_kg_picker=20.0,
        )
        await ledger.top_up_wallet(actor, wallet_key, 1000)
        p1 = await weighed_picker(sibling, "Wanjiru", 25)

        with pytest.raises(ValidationError):
            await ledger.pay_picker(actor, wallet_key, p1.id, collection.id)
        assert (await ledger.get_wallet(wallet_key)).current_balance == 1000
        (picker,) = await ledger.list_pickers(sibling.id)
        assert not picker.is_paid

    async def test_no_wallet(self, ledger, actor, wallet_key, collection, weighed_picker):
        p1 = await weighed_picker(collection, "Wanjiru", 25)
        with pytest.raises(WalletNotFoundError) as exc_info:
            await ledger.pay_picker(actor, wallet_key, p1.id)
        assert exc_info.value.message == (
            "No harvest wallet found for this project/crop. Add cash first."
        )
        (picker,) = await ledger.list_pickers(collection.id)
        assert not picker.is_paid

    async def test_ad_hoc_payment_writes_audit_row(
        self, ledger, actor, wallet_key, collection, db_session
    ):
        await ledger.top_up_wallet(actor, wallet_key, 800)
        await ledger.apply_cash_payment(actor, wallet_key, collection.id, 300)

        result = await db_session.execute(select(HarvestWalletPayment))
        (payment,) = result.scalars().all()
        assert payment.amount == 300
        assert payment.picker_id is None
        assert payment.created_by == actor.id
        assert (await ledger.get_wallet(wallet_key)).current_balance == 500

    async def test_insufficient_funds_leaves_everything_untouched(
        self, ledger, actor, wallet_key, collection, db_session
    ):
        await ledger.top_up_wallet(actor, wallet_key, 100)

        with pytest.raises(InsufficientFundsError) as exc_info:
            await ledger.apply_cash_payment(actor, wallet_key, collection.id, 150)

        assert exc_info.value.balance == 100
        assert exc_info.value.required == 150
        wallet = await ledger.get_wallet(wallet_key)
        assert wallet.current_balance == 100
        assert wallet.cash_paid_out_total == 0
        assert await ledger.get_usage(wallet_key, collection.id) is None
        result = await db_session.execute(select(HarvestWalletPayment))
        assert result.scalars().all() == []

    async def test_other_crop_wallet_rejected(
        self, ledger, actor, collection
    ):
        maize = WalletKey("company-1", "project-1", "maize")
        await ledger.top_up_wallet(actor, maize, 1000)
        with pytest.raises(ValidationError):
            await ledger.apply_cash_payment(actor, maize, collection.id, 100)
        assert (await ledger.get_wallet(maize)).current_balance == 1000

    async def test_usage_tracked_per_collection(
        self, ledger, actor, wallet_key, collection
    ):
        second = await ledger.create_collection(
            actor,
            company_id="company-1",
            project_id="project-1",
            crop_type="french-beans",
            name="Block B afternoon",
            harvest_date=date(2026, 3, 14),
            price_per_kg_picker=20.0,
        )
        await ledger.top_up_wallet(actor, wallet_key, 1000)
        await ledger.apply_cash_payment(actor, wallet_key, collection.id, 200)
        await ledger.apply_cash_payment(actor, wallet_key, collection.id, 50)
        await ledger.apply_cash_payment(actor, wallet_key, second.id, 300)

        assert (await ledger.get_usage(wallet_key, collection.id)).total_deducted == 250
        assert (await ledger.get_usage(wallet_key, second.id)).total_deducted == 300
        assert len(await ledger.list_usage(wallet_key)) == 2
        wallet = await ledger.get_wallet(wallet_key)
        assert wallet.current_balance == 450
        assert wallet.cash_received_total - wallet.cash_paid_out_total == wallet.current_balance


@pytest.mark.integration
@pytest.mark.asyncio
class TestBatchPayout:
    async def test_scenario_a_overdraw_rejected(
        self, ledger, actor, wallet_key, collection, weighed_picker
    ):
        """10000 in the wallet cannot cover a 12000 batch; nothing changes."""
        await ledger.top_up_wallet(actor, wallet_key, 10000)
        p1 = await weighed_picker(collection, "Achieng", 300)  # 6000
        p2 = await weighed_picker(collection, "Otieno", 300)   # 6000

        with pytest.raises(InsufficientFundsError):
            await ledger.pay_pickers_batch(actor, wallet_key, collection.id, [p1.id, p2.id])

        wallet = await ledger.get_wallet(wallet_key)
        assert wallet.current_balance == 10000
        assert all(not p.is_paid for p in await ledger.list_pickers(collection.id))
        assert await ledger.list_payment_batches(collection.id) == []
        assert await ledger.get_usage(wallet_key, collection.id) is None

    async def test_batch_pays_and_links_pickers(
        self, ledger, actor, wallet_key, collection, weighed_picker
    ):
        await ledger.top_up_wallet(actor, wallet_key, 5000)
        p1 = await weighed_picker(collection, "Achieng", 10)  # 200
        p2 = await weighed_picker(collection, "Otieno", 15)   # 300

        outcome = await ledger.pay_pickers_batch(
            actor, wallet_key, collection.id, [p1.id, p2.id]
        )

        assert outcome.total_amount == 500
        assert outcome.wallet.current_balance == 4500
        assert outcome.skipped_picker_ids == []
        (batch,) = await ledger.list_payment_batches(collection.id)
        assert sorted(batch.picker_ids) == sorted([p1.id, p2.id])
        assert batch.total_amount == 500
        for picker in await ledger.list_pickers(collection.id):
            assert picker.is_paid
            assert picker.payment_batch_id == batch.id
        assert (await ledger.get_usage(wallet_key, collection.id)).total_deducted == 500

    async def test_paid_and_zero_pickers_skipped(
        self, ledger, actor, wallet_key, collection, weighed_picker
    ):
        await ledger.top_up_wallet(actor, wallet_key, 5000)
        paid = await weighed_picker(collection, "Achieng", 10)
        unpaid = await weighed_picker(collection, "Otieno", 15)
        idle = await ledger.add_picker(actor, collection.id, "Kamau")
        await ledger.pay_picker(actor, wallet_key, paid.id)

        outcome = await ledger.pay_pickers_batch(
            actor, wallet_key, collection.id, [paid.id, unpaid.id, idle.id, "missing-id"]
        )

        assert outcome.paid_picker_ids == [unpaid.id]
        assert outcome.skipped_picker_ids == [paid.id, idle.id, "missing-id"]
        assert outcome.total_amount == 300
        assert outcome.wallet.current_balance == 5000 - 200 - 300

    async def test_cash_paid_picker_skipped(
        self, ledger, actor, wallet_key, collection, weighed_picker
    ):
        await ledger.top_up_wallet(actor, wallet_key, 5000)
        cash_paid = await weighed_picker(collection, "Achieng", 10)
        unpaid = await weighed_picker(collection, "Otieno", 15)
        await ledger.mark_picker_cash_paid(actor, cash_paid.id, collection.id)

        outcome = await ledger.pay_pickers_batch(
            actor, wallet_key, collection.id, [cash_paid.id, unpaid.id]
        )

        assert outcome.paid_picker_ids == [unpaid.id]
        assert outcome.skipped_picker_ids == [cash_paid.id]
        assert outcome.wallet.current_balance == 5000 - 300
        pickers = {p.id: p for p in await ledger.list_pickers(collection.id)}
        assert pickers[cash_paid.id].payment_batch_id is None

    async def test_nothing_to_pay_rejected(
        self, ledger, actor, wallet_key, collection, weighed_picker
    ):
        await ledger.top_up_wallet(actor, wallet_key, 5000)
        p1 = await weighed_picker(collection, "Achieng", 10)
        await ledger.pay_picker(actor, wallet_key, p1.id)

        with pytest.raises(ValidationError) as exc_info:
            await ledger.pay_pickers_batch(actor, wallet_key, collection.id, [p1.id])
        assert exc_info.value.message == (
            "All selected pickers are already paid or have zero amount"
        )
        assert await ledger.list_payment_batches(collection.id) == []

    async def test_empty_request_rejected(self, ledger, actor, wallet_key, collection):
        await ledger.top_up_wallet(actor, wallet_key, 5000)
        with pytest.raises(ValidationError):
            await ledger.pay_pickers_batch(actor, wallet_key, collection.id, [])

    async def test_batch_without_wallet(
        self, ledger, actor, wallet_key, collection, weighed_picker
    ):
        p1 = await weighed_picker(collection, "Achieng", 10)
        with pytest.raises(WalletNotFoundError):
            await ledger.pay_pickers_batch(actor, wallet_key, collection.id, [p1.id])

    async def test_batch_is_immutable(
        self, ledger, actor, wallet_key, collection, weighed_picker, session_factory
    ):
        await ledger.top_up_wallet(actor, wallet_key, 5000)
        p1 = await weighed_picker(collection, "Achieng", 10)
        await ledger.pay_pickers_batch(actor, wallet_key, collection.id, [p1.id])

        async with session_factory() as db:
            batch = (await db.execute(select(HarvestPaymentBatch))).scalar_one()
            batch.total_amount = 1
            with pytest.raises(ImmutableRecordError):
                await db.flush()
