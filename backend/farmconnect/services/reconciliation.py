"""Payment reconciliation — moving buyer payments from unpaid to paid.

Two paths reach the same guarded transition:

  Path A  "Pay Now"         process_payment(payment_id)
  Path B  hosted checkout   create_checkout_session → (webhook) →
                            reconcile_paid_session

`mark_payment_paid` is the only place a payment becomes paid.  It uses a
conditional update (`... WHERE status = 'unpaid'`) and issues the invoice
only when that update matched, so a payment is paid and invoiced at most
once no matter how often it is reconciled.
"""

import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from farmconnect.auth.principal import SYSTEM
from farmconnect.config import settings
from farmconnect.middleware.exceptions import InvalidRequestError, ResourceNotFoundError
from farmconnect.models.order import OrderStatus
from farmconnect.models.payment import Invoice, Payment, PaymentStatus
from farmconnect.services.gateway import StripeGateway, build_checkout_params
from farmconnect.services.order_state import load_order, transition_order
from farmconnect.utils.numbering import generate_invoice_number

logger = logging.getLogger(__name__)

SESSION_KEY = "stripe_session_id"


# ── Reads ────────────────────────────────────────────────────

async def load_payment(db: AsyncSession, payment_id: str) -> Payment | None:
    result = await db.execute(
        select(Payment)
        .where(Payment.id == payment_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_payment(db: AsyncSession, payment_id: str) -> Payment:
    payment = await load_payment(db, payment_id)
    if not payment:
        raise ResourceNotFoundError("Payment", payment_id)
    return payment


async def find_payment_by_session(db: AsyncSession, session_id: str) -> Payment | None:
    result = await db.execute(
        select(Payment)
        .where(Payment.stripe_session_id == session_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def find_payment_by_order(db: AsyncSession, order_id: str) -> Payment | None:
    """First buyer-side payment for an order (payouts excluded)."""
    result = await db.execute(
        select(Payment)
        .where(Payment.order_id == order_id, Payment.method != "payout")
        .order_by(Payment.created_at)
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_payments(
    db: AsyncSession,
    *,
    market_id: str | None = None,
    farmer_id: str | None = None,
    transporter_id: str | None = None,
    order_id: str | None = None,
) -> list[Payment]:
    """Payments filtered by party or order, newest first."""
    stmt = select(Payment)
    if market_id:
        stmt = stmt.where(Payment.market_id == market_id)
    if farmer_id:
        stmt = stmt.where(Payment.farmer_id == farmer_id)
    if transporter_id:
        stmt = stmt.where(Payment.transporter_id == transporter_id)
    if order_id:
        stmt = stmt.where(Payment.order_id == order_id)
    result = await db.execute(stmt.order_by(Payment.created_at.desc()))
    return list(result.scalars().all())


async def get_invoice_for_payment(db: AsyncSession, payment_id: str) -> Invoice:
    result = await db.execute(select(Invoice).where(Invoice.payment_id == payment_id))
    invoice = result.scalar_one_or_none()
    if not invoice:
        raise ResourceNotFoundError("Invoice for payment", payment_id)
    return invoice


# ── Writes ───────────────────────────────────────────────────

async def create_payment_for_order(
    db: AsyncSession,
    order_id: str,
    amount: float,
    *,
    market_id: str | None = None,
    farmer_id: str | None = None,
    transporter_id: str | None = None,
    method: str = "card",
    currency: str | None = None,
    metadata: dict | None = None,
) -> Payment:
    """Record an unpaid buyer payment for an order."""
    if method == "payout":
        raise InvalidRequestError("Payouts are created by the payout engine")

    payment = Payment(
        order_id=order_id,
        market_id=market_id,
        farmer_id=farmer_id,
        transporter_id=transporter_id,
        amount=amount,
        currency=(currency or settings.default_currency).upper(),
        method=method,
        status=PaymentStatus.UNPAID.value,
        created_at=datetime.utcnow(),
        stripe_session_id=(metadata or {}).get(SESSION_KEY),
        metadata_=metadata or {},
    )
    db.add(payment)
    await db.flush()
    return payment


async def issue_invoice(db: AsyncSession, payment_id: str, issued_at: datetime) -> Invoice:
    invoice = Invoice(
        payment_id=payment_id,
        invoice_number=await generate_invoice_number(db, issued_at),
        issued_at=issued_at,
        url=None,
    )
    db.add(invoice)
    await db.flush()
    return invoice


async def mark_payment_paid(db: AsyncSession, payment_id: str) -> Invoice | None:
    """unpaid → paid plus one invoice.  Returns None if it was not unpaid."""
    paid_at = datetime.utcnow()
    result = await db.execute(
        update(Payment)
        .where(Payment.id == payment_id, Payment.status == PaymentStatus.UNPAID.value)
        .values(status=PaymentStatus.PAID.value, paid_at=paid_at)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.info("Payment %s is not unpaid; skipping paid transition", payment_id)
        return None

    invoice = await issue_invoice(db, payment_id, paid_at)
    logger.info("Payment %s paid, invoice %s issued", payment_id, invoice.invoice_number)
    return invoice


async def process_payment(db: AsyncSession, payment_id: str) -> Payment:
    """Pay Now: charge directly and mark the payment paid.

    The direct charge is simulated and always succeeds.  Paying an
    already-paid payment returns it unchanged.
    """
    payment = await get_payment(db, payment_id)
    if payment.status == PaymentStatus.PAYOUT.value:
        raise InvalidRequestError("Payouts cannot be paid")

    await mark_payment_paid(db, payment_id)
    return await get_payment(db, payment_id)


async def confirm_order_after_payment(db: AsyncSession, order_id: str) -> bool:
    """Confirm a still-pending order once its payment has landed."""
    order = await load_order(db, order_id)
    if not order:
        logger.warning("Paid order %s not found; nothing to confirm", order_id)
        return False
    if order.status != OrderStatus.PENDING.value:
        logger.info("Order %s already %s; not confirming", order_id, order.status)
        return False
    await transition_order(db, order_id, OrderStatus.CONFIRMED, SYSTEM, note="Payment received")
    return True


async def reconcile_paid_session(
    db: AsyncSession,
    session_id: str,
    order_id: str | None,
    amount_minor: int | None = None,
    currency: str | None = None,
) -> str:
    """Apply a completed gateway payment to our records.

    Returns one of:
        "marked_paid"   existing unpaid payment marked paid
        "already_paid"  existing payment was already paid (no-op)
        "synthesized"   no payment existed; a paid one was created
        "ignored"       nothing to match against
    """
    payment = await find_payment_by_session(db, session_id)

    if payment:
        invoice = await mark_payment_paid(db, payment.id)
        outcome = "marked_paid" if invoice else "already_paid"
        order_id = order_id or payment.order_id
    elif order_id:
        order = await load_order(db, order_id)
        if not order:
            logger.warning("Session %s references unknown order %s", session_id, order_id)
            return "ignored"

        now = datetime.utcnow()
        payment = Payment(
            order_id=order_id,
            market_id=order.market_id,
            amount=(amount_minor or 0) / 100,
            currency=(currency or order.currency or settings.default_currency).upper(),
            method="card",
            status=PaymentStatus.PAID.value,
            created_at=now,
            paid_at=now,
            stripe_session_id=session_id,
            metadata_={SESSION_KEY: session_id},
        )
        db.add(payment)
        await db.flush()
        await issue_invoice(db, payment.id, now)
        logger.info("Synthesized paid payment %s for session %s", payment.id, session_id)
        outcome = "synthesized"
    else:
        logger.info("Session %s matches no payment and carries no order id", session_id)
        return "ignored"

    if order_id:
        await confirm_order_after_payment(db, order_id)
    return outcome


# ── Hosted checkout ──────────────────────────────────────────

async def create_checkout_session(
    db: AsyncSession,
    gateway: StripeGateway,
    order_id: str,
    amount: float,
    currency: str | None = None,
    success_url: str | None = None,
    cancel_url: str | None = None,
) -> dict:
    """Open a hosted checkout session and record an unpaid payment for it.

    The payment row is bookkeeping only: if it cannot be written the
    session is still returned and the webhook creates the record later.
    """
    currency = currency or settings.default_currency
    params = build_checkout_params(order_id, amount, currency, success_url, cancel_url)
    session = await gateway.create_checkout_session(params)

    try:
        async with db.begin_nested():
            order = await load_order(db, order_id)
            await create_payment_for_order(
                db,
                order_id,
                float(amount),
                market_id=order.market_id if order else None,
                currency=currency,
                metadata={SESSION_KEY: session["id"]},
            )
    except Exception as exc:
        logger.warning("Failed to insert payment record for session %s: %s", session["id"], exc)

    return {"url": session.get("url"), "id": session["id"]}


async def get_session_status(
    db: AsyncSession,
    gateway: StripeGateway,
    session_id: str,
) -> dict:
    """Best known payment status for a checkout session."""
    session = await gateway.retrieve_checkout_session(session_id)

    payment = await find_payment_by_session(db, session_id)
    if not payment:
        order_id = (session.get("metadata") or {}).get("order_id")
        if order_id:
            payment = await find_payment_by_order(db, order_id)

    if payment:
        return {"status": payment.status, "payment": payment, "session": session}
    return {
        "status": session.get("payment_status") or PaymentStatus.UNPAID.value,
        "payment": None,
        "session": session,
    }
