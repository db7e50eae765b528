"""Payout engine tests."""

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from farmconnect.auth.principal import Principal
from farmconnect.config import settings
from farmconnect.models.order import OrderStatus
from farmconnect.models.payment import Payment
from farmconnect.services import payouts
from farmconnect.services.order_state import transition_order
from farmconnect.services.payouts import (
    create_payout_for_recipient,
    dispatch_pending_payouts,
    get_earnings_for_recipient,
    list_payout_intents,
    queue_order_payouts,
)
from farmconnect.services.reconciliation import create_payment_for_order, mark_payment_paid


async def _deliver(db: AsyncSession, order, farmer, transporter):
    farmer_actor = Principal(kind="farmer", id=farmer.id)
    transporter_actor = Principal(kind="transporter", id=transporter.id)
    await transition_order(db, order.id, OrderStatus.CONFIRMED, farmer_actor)
    await transition_order(db, order.id, OrderStatus.PICKED_UP, transporter_actor)
    await transition_order(db, order.id, OrderStatus.IN_TRANSIT, transporter_actor)
    return await transition_order(db, order.id, OrderStatus.DELIVERED, transporter_actor)


async def _payouts(db: AsyncSession, order_id: str) -> list[Payment]:
    result = await db.execute(
        select(Payment)
        .where(Payment.order_id == order_id, Payment.method == "payout")
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


@pytest.mark.unit
@pytest.mark.asyncio
class TestDeliveryPayouts:

    async def test_delivery_splits_total(
        self, db_session: AsyncSession, order, farmer, transporter
    ):
        await _deliver(db_session, order, farmer, transporter)

        rows = await _payouts(db_session, order.id)
        by_recipient = {(p.farmer_id, p.transporter_id): p for p in rows}
        assert len(rows) == 2

        farmer_payout = by_recipient[(farmer.id, None)]
        assert farmer_payout.amount == 850.0
        assert farmer_payout.status == "payout"
        assert farmer_payout.paid_at is not None

        transporter_payout = by_recipient[(None, transporter.id)]
        assert transporter_payout.amount == 150.0
        assert transporter_payout.status == "payout"

        intents = await list_payout_intents(db_session, order_id=order.id)
        assert {i.status for i in intents} == {"completed"}
        assert all(i.payment_id for i in intents)

    async def test_no_transporter_share_without_transport_cost(
        self, db_session: AsyncSession, market, farmer, transporter
    ):
        from farmconnect.services.order_state import create_order

        order = await create_order(
            db_session,
            market_id=market.id,
            farmer_id=farmer.id,
            transporter_id=transporter.id,
            items=[{"produce_id": "p1", "quantity": 4, "unit_price": 25.0}],
        )
        await _deliver(db_session, order, farmer, transporter)

        rows = await _payouts(db_session, order.id)
        assert [(p.farmer_id, p.amount) for p in rows] == [(farmer.id, 100.0)]

    async def test_queueing_twice_adds_nothing(
        self, db_session: AsyncSession, order, farmer, transporter
    ):
        delivered = await _deliver(db_session, order, farmer, transporter)

        assert await queue_order_payouts(db_session, delivered) == []
        assert await dispatch_pending_payouts(db_session) == 0
        assert len(await _payouts(db_session, order.id)) == 2

    async def test_failed_payout_does_not_block_delivery_and_is_retried(
        self, db_session: AsyncSession, order, farmer, transporter, monkeypatch
    ):
        real_create = payouts.create_payout_for_recipient

        async def failing_create(*args, **kwargs):
            raise RuntimeError("ledger unavailable")

        monkeypatch.setattr(payouts, "create_payout_for_recipient", failing_create)
        delivered = await _deliver(db_session, order, farmer, transporter)

        assert delivered.status == "delivered"
        assert await _payouts(db_session, order.id) == []
        pending = await list_payout_intents(db_session, order_id=order.id, status="pending")
        assert len(pending) == 2
        assert all(i.attempts == 1 for i in pending)
        assert all("ledger unavailable" in i.last_error for i in pending)

        monkeypatch.setattr(payouts, "create_payout_for_recipient", real_create)
        assert await dispatch_pending_payouts(db_session) == 2

        assert sorted(p.amount for p in await _payouts(db_session, order.id)) == [150.0, 850.0]
        assert await list_payout_intents(db_session, order_id=order.id, status="pending") == []

    async def test_exhausted_intents_are_not_retried(
        self, db_session: AsyncSession, order, farmer, transporter, monkeypatch
    ):
        async def failing_create(*args, **kwargs):
            raise RuntimeError("ledger unavailable")

        monkeypatch.setattr(payouts, "create_payout_for_recipient", failing_create)
        monkeypatch.setattr(settings, "payout_max_attempts", 2)
        await _deliver(db_session, order, farmer, transporter)
        await dispatch_pending_payouts(db_session)

        intents = await list_payout_intents(db_session, order_id=order.id)
        assert all(i.attempts == 2 for i in intents)
        assert await dispatch_pending_payouts(db_session) == 0


@pytest.mark.unit
@pytest.mark.asyncio
class TestPayoutRecords:

    async def test_payout_for_transporter(self, db_session: AsyncSession, order, transporter):
        payment = await create_payout_for_recipient(
            db_session, order.id, transporter.id, "transporter", 75.5
        )
        assert payment.transporter_id == transporter.id
        assert payment.farmer_id is None
        assert payment.method == "payout"
        assert payment.currency == settings.default_currency

    async def test_unknown_recipient_type(self, db_session: AsyncSession, order):
        from farmconnect.middleware.exceptions import InvalidRequestError

        with pytest.raises(InvalidRequestError):
            await create_payout_for_recipient(db_session, order.id, "x", "market", 10.0)


@pytest.mark.unit
@pytest.mark.asyncio
class TestEarnings:

    async def test_earnings_after_delivery(
        self, db_session: AsyncSession, order, farmer, transporter
    ):
        await _deliver(db_session, order, farmer, transporter)

        assert await get_earnings_for_recipient(db_session, farmer.id) == 850.0
        assert await get_earnings_for_recipient(db_session, transporter.id) == 150.0

    async def test_unpaid_payments_do_not_count(
        self, db_session: AsyncSession, order, farmer
    ):
        unpaid = await create_payment_for_order(
            db_session, order.id, 40.0, farmer_id=farmer.id
        )
        assert await get_earnings_for_recipient(db_session, farmer.id) == 0.0

        await mark_payment_paid(db_session, unpaid.id)
        assert await get_earnings_for_recipient(db_session, farmer.id) == 40.0

    async def test_no_earnings(self, db_session: AsyncSession):
        assert await get_earnings_for_recipient(db_session, "nobody") == 0.0
