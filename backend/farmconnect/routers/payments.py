"""Buyer payments, invoices and earnings.

Endpoints:
    POST /api/payments                  Market records an unpaid payment for its order
    GET  /api/payments                  Payments of the calling profile
    GET  /api/payments/earnings         Farmer / transporter settled earnings
    POST /api/payments/{id}/pay         "Pay Now" (direct charge)
    GET  /api/payments/{id}/invoice     Invoice of a paid payment
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from farmconnect.auth.deps import get_current_principal, require_kind
from farmconnect.auth.principal import Principal
from farmconnect.database import get_db
from farmconnect.middleware.exceptions import PermissionDeniedError
from farmconnect.models.payment import Payment
from farmconnect.models.profile import ProfileKind
from farmconnect.schemas.common import EarningsOut
from farmconnect.schemas.payment import InvoiceOut, PaymentCreate, PaymentOut
from farmconnect.services.order_state import get_order
from farmconnect.services.payouts import get_earnings_for_recipient
from farmconnect.services.reconciliation import (
    create_payment_for_order,
    get_invoice_for_payment,
    get_payment,
    list_payments,
    process_payment,
)

router = APIRouter()

PARTY_FILTERS = {
    ProfileKind.MARKET.value: "market_id",
    ProfileKind.FARMER.value: "farmer_id",
    ProfileKind.TRANSPORTER.value: "transporter_id",
}


def _ensure_party(payment: Payment, principal: Principal) -> None:
    if principal.id not in (payment.market_id, payment.farmer_id, payment.transporter_id):
        raise PermissionDeniedError("You are not a party to this payment")


# ── POST /api/payments ───────────────────────────────────────

@router.post("", response_model=PaymentOut, status_code=status.HTTP_201_CREATED)
async def create_payment(
    body: PaymentCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_kind(ProfileKind.MARKET)),
):
    order = await get_order(db, body.order_id)
    if order.market_id != principal.id:
        raise PermissionDeniedError("Only the ordering market can pay for this order")

    payment = await create_payment_for_order(
        db,
        order.id,
        body.amount if body.amount is not None else order.total_amount,
        market_id=order.market_id,
        method=body.method,
        currency=body.currency or order.currency,
    )
    return await get_payment(db, payment.id)


# ── GET /api/payments ────────────────────────────────────────

@router.get("", response_model=list[PaymentOut])
async def list_my_payments(
    order_id: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    column = PARTY_FILTERS[principal.kind]
    return await list_payments(db, order_id=order_id, **{column: principal.id})


# ── GET /api/payments/earnings ───────────────────────────────

@router.get("/earnings", response_model=EarningsOut)
async def read_earnings(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_kind(ProfileKind.FARMER, ProfileKind.TRANSPORTER)),
):
    total = await get_earnings_for_recipient(db, principal.id)
    return EarningsOut(recipient_id=principal.id, total=total)


# ── POST /api/payments/{id}/pay ──────────────────────────────

@router.post("/{payment_id}/pay", response_model=PaymentOut)
async def pay_now(
    payment_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_kind(ProfileKind.MARKET)),
):
    payment = await get_payment(db, payment_id)
    _ensure_party(payment, principal)
    return await process_payment(db, payment_id)


# ── GET /api/payments/{id}/invoice ───────────────────────────

@router.get("/{payment_id}/invoice", response_model=InvoiceOut)
async def read_invoice(
    payment_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    payment = await get_payment(db, payment_id)
    _ensure_party(payment, principal)
    return await get_invoice_for_payment(db, payment_id)
