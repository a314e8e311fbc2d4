"""Concurrent payouts against one shared wallet."""

import asyncio
from datetime import date

import pytest
from sqlalchemy import select

from farmvault.middleware.exceptions import InsufficientFundsError, ValidationError
from farmvault.models import HarvestWalletPayment
from farmvault.services import wallet as wallet_service


class Gate:
    """Parks the first call of a patched function until released."""

    def __init__(self):
        self.calls = 0
        self.release = asyncio.Event()

    async def reached(self):
        while self.calls == 0:
            await asyncio.sleep(0.01)


@pytest.fixture
def hold_first_call(monkeypatch):
    """hold_first_call(module, name) returns a Gate around module.name."""

    def _hold(module, name):
        original = getattr(module, name)
        gate = Gate()

        async def held(*args, **kwargs):
            gate.calls += 1
            if gate.calls == 1:
                await gate.release.wait()
            return await original(*args, **kwargs)

        monkeypatch.setattr(module, name, held)
        return gate

    return _hold


@pytest.mark.integration
@pytest.mark.slow
@pytest.mark.asyncio
class TestConcurrentPayouts:
    async def test_scenario_e_joint_overdraw(
        self, ledger, actor, wallet_key, collection, weighed_picker
    ):
        """Two 6000 batches racing on a 10000 wallet: exactly one wins."""
        other = await ledger.create_collection(
            actor,
            company_id="company-1",
            project_id="project-1",
            crop_type="french-beans",
            name="Block C",
            harvest_date=date(2026, 3, 14),
            price_per_kg_picker=20.0,
        )
        await ledger.top_up_wallet(actor, wallet_key, 10000)
        a = await weighed_picker(collection, "Achieng", 300)
        b = await weighed_picker(other, "Otieno", 300)

        results = await asyncio.gather(
            ledger.pay_pickers_batch(actor, wallet_key, collection.id, [a.id]),
            ledger.pay_pickers_batch(actor, wallet_key, other.id, [b.id]),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        successes = [r for r in results if not isinstance(r, Exception)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], InsufficientFundsError)

        wallet = await ledger.get_wallet(wallet_key)
        assert wallet.current_balance == 4000
        assert wallet.cash_paid_out_total == 6000
        assert wallet.current_balance >= 0

    async def test_many_small_payments_all_land(
        self, ledger, actor, wallet_key, collection
    ):
        await ledger.top_up_wallet(actor, wallet_key, 1000)

        await asyncio.gather(*(
            ledger.apply_cash_payment(actor, wallet_key, collection.id, 100)
            for _ in range(6)
        ))

        wallet = await ledger.get_wallet(wallet_key)
        assert wallet.current_balance == 400
        assert wallet.cash_paid_out_total == 600
        usage = await ledger.get_usage(wallet_key, collection.id)
        assert usage.total_deducted == 600

    async def test_racing_top_ups_accumulate(self, ledger, actor, wallet_key):
        await asyncio.gather(*(
            ledger.top_up_wallet(actor, wallet_key, 250) for _ in range(4)
        ))

        wallet = await ledger.get_wallet(wallet_key)
        assert wallet.current_balance == 1000
        assert wallet.cash_received_total == 1000


@pytest.mark.integration
@pytest.mark.slow
@pytest.mark.asyncio
class TestConcurrentPickerPayouts:
    """One picker, two payouts in flight: the picker is paid exactly once."""

    async def test_same_picker_paid_once(
        self, ledger, actor, wallet_key, collection, weighed_picker, hold_first_call, db_session
    ):
        await ledger.top_up_wallet(actor, wallet_key, 10000)
        p1 = await weighed_picker(collection, "Achieng", 100)  # 2000
        gate = hold_first_call(wallet_service, "pay_picker")

        first = asyncio.create_task(ledger.pay_picker(actor, wallet_key, p1.id))
        await gate.reached()
        second = await ledger.pay_picker(actor, wallet_key, p1.id)
        gate.release.set()

        with pytest.raises(ValidationError):
            await first

        assert second.amount == 2000
        wallet = await ledger.get_wallet(wallet_key)
        assert wallet.current_balance == 8000
        assert wallet.cash_paid_out_total == 2000
        assert (await ledger.get_usage(wallet_key, collection.id)).total_deducted == 2000
        payments = (await db_session.execute(select(HarvestWalletPayment))).scalars().all()
        assert len(payments) == 1

    async def test_single_payout_loses_to_batch(
        self, ledger, actor, wallet_key, collection, weighed_picker, hold_first_call
    ):
        await ledger.top_up_wallet(actor, wallet_key, 10000)
        p1 = await weighed_picker(collection, "Achieng", 100)  # 2000
        p2 = await weighed_picker(collection, "Otieno", 50)    # 1000
        gate = hold_first_call(wallet_service, "pay_picker")

        single = asyncio.create_task(ledger.pay_picker(actor, wallet_key, p1.id))
        await gate.reached()
        outcome = await ledger.pay_pickers_batch(
            actor, wallet_key, collection.id, [p1.id, p2.id]
        )
        gate.release.set()

        with pytest.raises(ValidationError):
            await single

        assert outcome.total_amount == 3000
        wallet = await ledger.get_wallet(wallet_key)
        assert wallet.current_balance == 7000
        (batch,) = await ledger.list_payment_batches(collection.id)
        for picker in await ledger.list_pickers(collection.id):
            assert picker.payment_batch_id == batch.id

    async def test_cash_mark_during_batch_is_not_debited(
        self, ledger, actor, wallet_key, collection, weighed_picker, hold_first_call
    ):
        await ledger.top_up_wallet(actor, wallet_key, 10000)
        p1 = await weighed_picker(collection, "Achieng", 100)  # 2000
        p2 = await weighed_picker(collection, "Otieno", 50)    # 1000
        gate = hold_first_call(wallet_service, "debit_wallet")

        batch = asyncio.create_task(
            ledger.pay_pickers_batch(actor, wallet_key, collection.id, [p1.id, p2.id])
        )
        await gate.reached()
        await ledger.mark_picker_cash_paid(actor, p1.id, collection.id)
        gate.release.set()
        outcome = await batch

        assert outcome.paid_picker_ids == [p2.id]
        assert outcome.skipped_picker_ids == [p1.id]
        assert outcome.total_amount == 1000
        wallet = await ledger.get_wallet(wallet_key)
        assert wallet.current_balance == 9000
        pickers = {p.id: p for p in await ledger.list_pickers(collection.id)}
        assert pickers[p1.id].is_paid
        assert pickers[p1.id].payment_batch_id is None
