"""Hosted checkout and gateway webhook endpoints.

Endpoints:
    POST /api/stripe/create-checkout-session   Open a hosted checkout session
    GET  /api/stripe/session                   Payment status of a session
    POST /api/stripe/webhook                   Gateway event delivery

These are called by the web client and by the gateway, not with a
FarmConnect access token.
"""

import logging

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from farmconnect.database import get_db
from farmconnect.middleware.exceptions import InvalidRequestError
from farmconnect.schemas.checkout import (
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    SessionStatusResponse,
)
from farmconnect.services.gateway import StripeGateway, get_gateway
from farmconnect.services.reconciliation import create_checkout_session, get_session_status
from farmconnect.services.webhooks import handle_webhook_event

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/create-checkout-session", response_model=CheckoutSessionResponse)
async def create_session(
    body: CheckoutSessionRequest,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
):
    if not body.order_id or body.amount is None:
        raise InvalidRequestError("orderId and amount are required")
    if body.amount <= 0:
        raise InvalidRequestError("amount must be positive")

    return await create_checkout_session(
        db,
        gateway,
        body.order_id,
        body.amount,
        currency=body.currency,
        success_url=body.success_url,
        cancel_url=body.cancel_url,
    )


@router.get("/session", response_model=SessionStatusResponse)
async def read_session(
    session_id_camel: str | None = Query(None, alias="sessionId"),
    session_id: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
):
    sid = session_id_camel or session_id
    if not sid:
        raise InvalidRequestError("sessionId is required")
    return await get_session_status(db, gateway, sid)


@router.post("/webhook", response_class=PlainTextResponse)
async def receive_webhook(
    request: Request,
    stripe_signature: str | None = Header(None, alias="Stripe-Signature"),
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
):
    """Signature is verified against the raw body, so it is read unparsed."""
    raw_body = await request.body()
    result = await handle_webhook_event(db, gateway, raw_body, stripe_signature)
    if result.outcome == "failed":
        logger.warning(
            "Webhook %s acknowledged despite reconciliation failure",
            result.event_id,
            extra={"path": request.url.path, "method": request.method},
        )
    return PlainTextResponse("OK")
