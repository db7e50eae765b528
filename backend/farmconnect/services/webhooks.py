"""Gateway webhook ingestion.

Order of checks:
    1. webhook secret configured            else ConfigurationError (500)
    2. Stripe-Signature verifies            else WebhookSignatureError (400)
    3. event type is one we reconcile       else ignored
    4. event id not processed before        else ignored
    5. reconcile inside a savepoint; errors are logged and swallowed so
       the gateway still gets a 200 and does not redeliver in a storm

Handled events:
    checkout.session.completed   keyed by the session id
    payment_intent.succeeded     keyed by metadata.checkout_session_id
"""

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from farmconnect.config import settings
from farmconnect.middleware.exceptions import ConfigurationError
from farmconnect.models.webhook_event import ProcessedWebhookEvent
from farmconnect.services.gateway import StripeGateway
from farmconnect.services.reconciliation import reconcile_paid_session

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
INTENT_SUCCEEDED = "payment_intent.succeeded"

APPLIED_OUTCOMES = frozenset({"marked_paid", "already_paid", "synthesized"})


@dataclass
class WebhookResult:
    event_id: str | None
    event_type: str | None
    outcome: str


async def _already_processed(db: AsyncSession, event_id: str) -> bool:
    result = await db.execute(
        select(ProcessedWebhookEvent.event_id).where(ProcessedWebhookEvent.event_id == event_id)
    )
    return result.scalar_one_or_none() is not None


async def _reconcile(db: AsyncSession, event_type: str, obj: dict) -> str:
    metadata = obj.get("metadata") or {}

    if event_type == CHECKOUT_COMPLETED:
        amount = obj.get("amount_total")
        if amount is None:
            amount = obj.get("amount_subtotal")
        return await reconcile_paid_session(
            db,
            session_id=obj["id"],
            order_id=metadata.get("order_id"),
            amount_minor=amount,
            currency=obj.get("currency"),
        )

    # payment_intent.succeeded: only reconcilable through its checkout session
    session_id = metadata.get("checkout_session_id")
    if not session_id:
        logger.info("Payment intent %s carries no checkout_session_id", obj.get("id"))
        return "ignored"
    return await reconcile_paid_session(
        db,
        session_id=session_id,
        order_id=metadata.get("order_id"),
        amount_minor=obj.get("amount_received") or obj.get("amount"),
        currency=obj.get("currency"),
    )


async def handle_webhook_event(
    db: AsyncSession,
    gateway: StripeGateway,
    raw_body: bytes,
    signature: str | None,
) -> WebhookResult:
    """Verify and apply one gateway event."""
    secret = settings.stripe_webhook_secret
    if not secret:
        logger.error("Missing STRIPE_WEBHOOK_SECRET env")
        raise ConfigurationError("Webhook secret not configured")

    event = gateway.construct_event(raw_body, signature or "", secret)
    event_id = event.get("id")
    event_type = event.get("type")

    if event_type not in (CHECKOUT_COMPLETED, INTENT_SUCCEEDED):
        logger.info("Unhandled event type %s", event_type)
        return WebhookResult(event_id, event_type, "ignored")

    if event_id and await _already_processed(db, event_id):
        logger.info("Event %s already processed; skipping", event_id)
        return WebhookResult(event_id, event_type, "duplicate")

    obj = (event.get("data") or {}).get("object") or {}
    try:
        async with db.begin_nested():
            outcome = await _reconcile(db, event_type, obj)
            if event_id and outcome in APPLIED_OUTCOMES:
                db.add(ProcessedWebhookEvent(event_id=event_id, event_type=event_type))
                await db.flush()
    except Exception:
        logger.exception("Failed to reconcile %s (event %s)", event_type, event_id)
        outcome = "failed"

    logger.info("Webhook %s (%s): %s", event_id, event_type, outcome)
    return WebhookResult(event_id, event_type, outcome)
