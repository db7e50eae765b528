"""Payment and Invoice — money in from markets, money out to farmers and transporters.

A buyer payment is created `unpaid` (at checkout) and moves to `paid`
exactly once, either through "Pay Now" or a gateway webhook.  Each such
move issues exactly one Invoice.

Payouts are written by the payout engine only, with method="payout" and
status="payout" (settled on creation).
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from farmconnect.database import Base


class PaymentStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    PAYOUT = "payout"


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        UniqueConstraint("stripe_session_id", name="uq_payments_stripe_session_id"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("orders.id"), nullable=False, index=True
    )

    # ── Parties (recipient-typed) ────────────────────────────
    market_id: Mapped[str | None] = mapped_column(String(36), index=True)
    farmer_id: Mapped[str | None] = mapped_column(String(36), index=True)
    transporter_id: Mapped[str | None] = mapped_column(String(36), index=True)

    # ── Amounts ──────────────────────────────────────────────
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="KES")
    # card | payout
    method: Mapped[str] = mapped_column(String(30), default="card")

    # ── Status ───────────────────────────────────────────────
    # unpaid | paid | payout
    status: Mapped[str] = mapped_column(
        String(30), default=PaymentStatus.UNPAID.value, nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime)

    # One payment per hosted checkout session
    stripe_session_id: Mapped[str | None] = mapped_column(String(255))
    # Gateway correlation ids: {"stripe_session_id": "cs_..."}
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSON, default=dict)

    # ── Relationships ────────────────────────────────────────
    invoice = relationship(
        "Invoice", back_populates="payment", uselist=False, lazy="selectin"
    )


class Invoice(Base):
    __tablename__ = "invoices"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    # One invoice per paid transition
    payment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("payments.id"), unique=True, nullable=False
    )
    invoice_number: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False, index=True
    )
    issued_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    url: Mapped[str | None] = mapped_column(String(500))

    payment = relationship("Payment", back_populates="invoice")
