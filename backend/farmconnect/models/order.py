"""Order — one farmer → market produce transaction.

Created by a market at checkout in `pending` and mutated afterwards only
through the order state machine (`farmconnect.services.order_state`).
Orders are never deleted; cancellation is a terminal status.

Lifecycle:  pending → confirmed → picked_up → in_transit → delivered
            pending → cancelled
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Date, DateTime, Float, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from farmconnect.database import Base


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    # ── Parties ──────────────────────────────────────────────
    market_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("markets.id"), nullable=False, index=True
    )
    farmer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("farmers.id"), nullable=False, index=True
    )
    # Set once transport is selected (checkout or farmer confirmation)
    transporter_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("transporters.id"), index=True
    )

    # ── Status ───────────────────────────────────────────────
    status: Mapped[str] = mapped_column(
        String(30), default=OrderStatus.PENDING.value, nullable=False, index=True
    )
    # Append-only: [{"status": "pending", "timestamp": "...", "actor_id": "...", "note": "..."}]
    status_history: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    # Bumped on every status write; compare-and-swap token
    revision: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # ── Amounts ──────────────────────────────────────────────
    currency: Mapped[str] = mapped_column(String(3), default="KES")
    # Produce subtotal + transport_cost
    total_amount: Mapped[float] = mapped_column(Float, nullable=False)
    transport_cost: Mapped[float] = mapped_column(Float, default=0.0)
    distance_km: Mapped[float | None] = mapped_column(Float)

    # ── Delivery ─────────────────────────────────────────────
    pickup_address: Mapped[str | None] = mapped_column(Text)
    delivery_address: Mapped[str | None] = mapped_column(Text)
    delivery_date: Mapped[datetime | None] = mapped_column(Date)
    delivery_time: Mapped[str | None] = mapped_column(String(50))
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # ── Relationships ────────────────────────────────────────
    items = relationship("OrderItem", back_populates="order", lazy="selectin")


class OrderItem(Base):
    __tablename__ = "order_items"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("orders.id"), nullable=False, index=True
    )
    produce_id: Mapped[str] = mapped_column(String(36), nullable=False)
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    unit_price: Mapped[float] = mapped_column(Float, nullable=False)
    # Always quantity × unit_price
    total_price: Mapped[float] = mapped_column(Float, nullable=False)

    order = relationship("Order", back_populates="items")
