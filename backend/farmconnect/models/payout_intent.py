"""PayoutIntent — outbox row recording that a recipient is owed a payout.

Written in the same transaction as an order's move to `delivered`, then
turned into a payout Payment by the payout engine.  Failed dispatches stay
`pending` and are retried by the background loop until
`settings.payout_max_attempts` is reached.

Lifecycle:  pending → completed
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from farmconnect.database import Base


class PayoutIntent(Base):
    __tablename__ = "payout_intents"
    __table_args__ = (
        UniqueConstraint("order_id", "recipient_type", name="uq_payout_intent_order_recipient"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("orders.id"), nullable=False, index=True
    )
    # farmer | transporter
    recipient_type: Mapped[str] = mapped_column(String(20), nullable=False)
    recipient_id: Mapped[str] = mapped_column(String(36), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="KES")

    # pending | completed
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[str | None] = mapped_column(Text)
    payment_id: Mapped[str | None] = mapped_column(String(36))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)
