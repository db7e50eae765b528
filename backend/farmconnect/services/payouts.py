"""Payout engine — farmer and transporter shares of a delivered order.

Shares:
    transporter = order.transport_cost (0 if absent)
    farmer      = order.total_amount − transporter

When an order is delivered the state machine calls `queue_order_payouts`
in the same transaction as the status write.  That records one
PayoutIntent per non-zero share with a known recipient; the unique
(order_id, recipient_type) constraint keeps it at one per recipient.

`dispatch_payout` turns an intent into a payout Payment inside a
savepoint.  A failure rolls back only that savepoint, bumps the intent's
`attempts` and leaves it pending for the retry loop
(`farmconnect.services.scheduler`).  Delivery itself never fails because
of a payout.
"""

import logging
from datetime import datetime

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from farmconnect.config import settings
from farmconnect.middleware.exceptions import InvalidRequestError
from farmconnect.models.order import Order
from farmconnect.models.payment import Payment, PaymentStatus
from farmconnect.models.payout_intent import PayoutIntent

logger = logging.getLogger(__name__)

RECIPIENT_COLUMNS = {
    "farmer": "farmer_id",
    "transporter": "transporter_id",
}

EARNING_STATUSES = (PaymentStatus.PAYOUT.value, PaymentStatus.PAID.value)


async def create_payout_for_recipient(
    db: AsyncSession,
    order_id: str,
    recipient_id: str,
    recipient_type: str,
    amount: float,
    currency: str | None = None,
) -> Payment:
    """Insert a settled payout Payment for one recipient."""
    column = RECIPIENT_COLUMNS.get(recipient_type)
    if column is None:
        raise InvalidRequestError(f"Unknown payout recipient type: {recipient_type}")

    now = datetime.utcnow()
    payment = Payment(
        order_id=order_id,
        amount=amount,
        currency=currency or settings.default_currency,
        method="payout",
        status=PaymentStatus.PAYOUT.value,
        created_at=now,
        paid_at=now,
        metadata_={},
    )
    setattr(payment, column, recipient_id)
    db.add(payment)
    await db.flush()
    return payment


def compute_payout_shares(order: Order) -> list[tuple[str, str, float]]:
    """Return (recipient_type, recipient_id, amount) for each share owed."""
    transporter_amount = round(order.transport_cost or 0.0, 2)
    farmer_amount = round((order.total_amount or 0.0) - transporter_amount, 2)

    shares = []
    if farmer_amount > 0 and order.farmer_id:
        shares.append(("farmer", order.farmer_id, farmer_amount))
    if transporter_amount > 0 and order.transporter_id:
        shares.append(("transporter", order.transporter_id, transporter_amount))
    return shares


async def queue_order_payouts(db: AsyncSession, order: Order) -> list[PayoutIntent]:
    """Record payout intents for a delivered order (idempotent per recipient)."""
    result = await db.execute(
        select(PayoutIntent.recipient_type).where(PayoutIntent.order_id == order.id)
    )
    already_queued = {row[0] for row in result.all()}

    intents = []
    for recipient_type, recipient_id, amount in compute_payout_shares(order):
        if recipient_type in already_queued:
            continue
        intent = PayoutIntent(
            order_id=order.id,
            recipient_type=recipient_type,
            recipient_id=recipient_id,
            amount=amount,
            currency=order.currency or settings.default_currency,
            status="pending",
            attempts=0,
        )
        db.add(intent)
        intents.append(intent)

    if intents:
        await db.flush()
        logger.info("Queued %d payout(s) for order %s", len(intents), order.id)
    return intents


async def dispatch_payout(db: AsyncSession, intent: PayoutIntent) -> Payment | None:
    """Create the payout Payment for one pending intent.

    Returns the Payment, or None if the intent was already taken or the
    payout failed (the failure is recorded on the intent).
    """
    intent_id = intent.id
    order_id = intent.order_id
    recipient_type = intent.recipient_type
    recipient_id = intent.recipient_id
    amount = intent.amount
    currency = intent.currency

    try:
        async with db.begin_nested():
            now = datetime.utcnow()
            claimed = await db.execute(
                update(PayoutIntent)
                .where(PayoutIntent.id == intent_id, PayoutIntent.status == "pending")
                .values(status="completed", completed_at=now)
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount != 1:
                return None

            payment = await create_payout_for_recipient(
                db, order_id, recipient_id, recipient_type, amount, currency
            )
            await db.execute(
                update(PayoutIntent)
                .where(PayoutIntent.id == intent_id)
                .values(payment_id=payment.id)
                .execution_options(synchronize_session=False)
            )
    except Exception as exc:
        logger.warning(
            "Failed to create %s payout for order %s: %s",
            recipient_type, order_id, exc,
        )
        await db.execute(
            update(PayoutIntent)
            .where(PayoutIntent.id == intent_id)
            .values(attempts=PayoutIntent.attempts + 1, last_error=str(exc)[:1000])
            .execution_options(synchronize_session=False)
        )
        return None

    logger.info(
        "Paid out %.2f %s to %s %s for order %s",
        amount, currency, recipient_type, recipient_id, order_id,
    )
    return payment


async def dispatch_pending_payouts(
    db: AsyncSession,
    order_id: str | None = None,
    limit: int = 100,
) -> int:
    """Dispatch pending intents below the attempt limit.  Returns the number paid."""
    stmt = (
        select(PayoutIntent)
        .where(
            PayoutIntent.status == "pending",
            PayoutIntent.attempts < settings.payout_max_attempts,
        )
        .order_by(PayoutIntent.created_at)
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    if order_id:
        stmt = stmt.where(PayoutIntent.order_id == order_id)

    result = await db.execute(stmt)
    intents = list(result.scalars().all())

    paid = 0
    for intent in intents:
        if await dispatch_payout(db, intent) is not None:
            paid += 1
    return paid


async def list_payout_intents(
    db: AsyncSession,
    order_id: str | None = None,
    status: str | None = None,
) -> list[PayoutIntent]:
    stmt = select(PayoutIntent).order_by(PayoutIntent.created_at)
    if order_id:
        stmt = stmt.where(PayoutIntent.order_id == order_id)
    if status:
        stmt = stmt.where(PayoutIntent.status == status)
    result = await db.execute(stmt.execution_options(populate_existing=True))
    return list(result.scalars().all())


async def get_earnings_for_recipient(db: AsyncSession, recipient_id: str) -> float:
    """Sum of paid and payout amounts where the recipient is farmer or transporter."""
    result = await db.execute(
        select(func.coalesce(func.sum(Payment.amount), 0.0)).where(
            or_(
                Payment.farmer_id == recipient_id,
                Payment.transporter_id == recipient_id,
            ),
            Payment.status.in_(EARNING_STATUSES),
        )
    )
    return float(result.scalar() or 0.0)
