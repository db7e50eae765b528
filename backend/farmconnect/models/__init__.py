"""Aggregate model imports for Alembic auto-detection."""

from farmconnect.models.profile import Farmer, Market, Transporter, ProfileKind  # noqa: F401
from farmconnect.models.order import Order, OrderItem, OrderStatus  # noqa: F401
from farmconnect.models.payment import Invoice, Payment, PaymentStatus  # noqa: F401
from farmconnect.models.payout_intent import PayoutIntent  # noqa: F401
from farmconnect.models.webhook_event import ProcessedWebhookEvent  # noqa: F401
