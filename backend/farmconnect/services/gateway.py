"""Stripe gateway — hosted checkout sessions and webhook verification.

The rest of the service talks to Stripe only through `StripeGateway`, and
gets one from the `get_gateway` dependency so tests can substitute a fake.
Everything returned from here is a plain dict.
"""

import json
import logging
from decimal import ROUND_HALF_UP, Decimal

import stripe

from farmconnect.config import settings
from farmconnect.middleware.exceptions import (
    ConfigurationError,
    GatewayError,
    InvalidRequestError,
    WebhookSignatureError,
)

logger = logging.getLogger(__name__)


def to_minor_units(amount) -> int:
    """49.99 → 4999."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def default_success_url() -> str:
    return f"{settings.public_url}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}"


def default_cancel_url() -> str:
    return f"{settings.public_url}/checkout/success?canceled=1"


def build_checkout_params(
    order_id: str,
    amount,
    currency: str,
    success_url: str | None = None,
    cancel_url: str | None = None,
) -> dict:
    """Parameters for a one-line-item hosted checkout session."""
    return {
        "payment_method_types": ["card"],
        "mode": "payment",
        "line_items": [
            {
                "price_data": {
                    "currency": currency.lower(),
                    "product_data": {"name": f"Order {order_id}"},
                    "unit_amount": to_minor_units(amount),
                },
                "quantity": 1,
            }
        ],
        "metadata": {"order_id": order_id},
        "success_url": success_url or default_success_url(),
        "cancel_url": cancel_url or default_cancel_url(),
    }


def _as_dict(obj) -> dict:
    if isinstance(obj, dict):
        return obj
    return obj.to_dict()


class StripeGateway:
    def __init__(self, api_key: str | None = None):
        self.api_key = api_key if api_key is not None else settings.stripe_secret_key

    def _require_key(self) -> str:
        if not self.api_key:
            logger.error("Missing STRIPE_SECRET_KEY env")
            raise ConfigurationError("Payment gateway not configured")
        return self.api_key

    async def create_checkout_session(self, params: dict) -> dict:
        api_key = self._require_key()
        try:
            session = await stripe.checkout.Session.create_async(api_key=api_key, **params)
        except stripe.StripeError as exc:
            logger.error("Stripe checkout session creation failed: %s", exc)
            raise GatewayError(str(exc))
        return _as_dict(session)

    async def retrieve_checkout_session(self, session_id: str) -> dict:
        api_key = self._require_key()
        try:
            session = await stripe.checkout.Session.retrieve_async(session_id, api_key=api_key)
        except stripe.StripeError as exc:
            logger.error("Stripe session %s retrieval failed: %s", session_id, exc)
            raise GatewayError(str(exc))
        return _as_dict(session)

    def construct_event(self, payload: bytes, signature: str, secret: str) -> dict:
        """Verify the Stripe-Signature header and return the parsed event."""
        try:
            body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
            stripe.WebhookSignature.verify_header(
                body, signature, secret, tolerance=stripe.Webhook.DEFAULT_TOLERANCE
            )
        except UnicodeDecodeError:
            logger.warning("Webhook payload is not valid UTF-8")
            raise WebhookSignatureError("Webhook Error: payload is not valid UTF-8")
        except stripe.SignatureVerificationError as exc:
            logger.warning("Webhook signature verification failed: %s", exc)
            raise WebhookSignatureError(f"Webhook Error: {exc}")
        try:
            return json.loads(body)
        except ValueError as exc:
            raise InvalidRequestError(f"Webhook Error: malformed payload ({exc})")


def get_gateway() -> StripeGateway:
    return StripeGateway()
