"""Initial schema — profiles, orders, payments, invoices, payout outbox, webhook log.

Revision ID: 0001
Revises: (none)
Create Date: 2026-10-17

Run with:
    alembic upgrade head
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def upgrade() -> None:
    # ── Profiles ─────────────────────────────────────────────

    op.create_table(
        "farmers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(50)),
        sa.Column("farm_name", sa.String(255), nullable=False),
        sa.Column("location_address", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "markets",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("business_name", sa.String(255), nullable=False),
        sa.Column("business_type", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(50)),
        sa.Column("location_address", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "transporters",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("company_name", sa.String(255), nullable=False),
        sa.Column("owner_name", sa.String(255)),
        sa.Column("email", sa.String(255)),
        sa.Column("phone", sa.String(50)),
        sa.Column("vehicle_type", sa.String(100), server_default="Pickup truck"),
        sa.Column("location_address", sa.Text()),
        sa.Column("base_rate", sa.Float(), server_default="0"),
        sa.Column("per_km_rate", sa.Float(), server_default="0"),
        sa.Column("refrigeration_premium", sa.Float(), server_default="0"),
        sa.Column("has_refrigeration", sa.Boolean(), server_default="false"),
        sa.Column("is_available", sa.Boolean(), server_default="true"),
        sa.Column("rating", sa.Float(), server_default="0"),
        sa.Column("total_deliveries", sa.Integer(), server_default="0"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    # ── Orders ───────────────────────────────────────────────

    op.create_table(
        "orders",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("market_id", sa.String(36), sa.ForeignKey("markets.id"), nullable=False),
        sa.Column("farmer_id", sa.String(36), sa.ForeignKey("farmers.id"), nullable=False),
        sa.Column("transporter_id", sa.String(36), sa.ForeignKey("transporters.id")),
        sa.Column("status", sa.String(30), nullable=False, server_default="pending"),
        sa.Column("status_history", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("revision", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(3), server_default="KES"),
        sa.Column("total_amount", sa.Float(), nullable=False),
        sa.Column("transport_cost", sa.Float(), server_default="0"),
        sa.Column("distance_km", sa.Float()),
        sa.Column("pickup_address", sa.Text()),
        sa.Column("delivery_address", sa.Text()),
        sa.Column("delivery_date", sa.Date()),
        sa.Column("delivery_time", sa.String(50)),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_orders_market_id", "orders", ["market_id"])
    op.create_index("ix_orders_farmer_id", "orders", ["farmer_id"])
    op.create_index("ix_orders_transporter_id", "orders", ["transporter_id"])
    op.create_index("ix_orders_status", "orders", ["status"])

    op.create_table(
        "order_items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("order_id", sa.String(36), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("produce_id", sa.String(36), nullable=False),
        sa.Column("quantity", sa.Float(), nullable=False),
        sa.Column("unit_price", sa.Float(), nullable=False),
        sa.Column("total_price", sa.Float(), nullable=False),
    )
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"])

    # ── Payments ─────────────────────────────────────────────

    op.create_table(
        "payments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("order_id", sa.String(36), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("market_id", sa.String(36)),
        sa.Column("farmer_id", sa.String(36)),
        sa.Column("transporter_id", sa.String(36)),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("currency", sa.String(3), server_default="KES"),
        sa.Column("method", sa.String(30), server_default="card"),
        sa.Column("status", sa.String(30), nullable=False, server_default="unpaid"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("paid_at", sa.DateTime()),
        sa.Column("stripe_session_id", sa.String(255)),
        sa.Column("metadata", sa.JSON(), server_default="{}"),
        sa.UniqueConstraint("stripe_session_id", name="uq_payments_stripe_session_id"),
    )
    op.create_index("ix_payments_order_id", "payments", ["order_id"])
    op.create_index("ix_payments_market_id", "payments", ["market_id"])
    op.create_index("ix_payments_farmer_id", "payments", ["farmer_id"])
    op.create_index("ix_payments_transporter_id", "payments", ["transporter_id"])
    op.create_index("ix_payments_status", "payments", ["status"])

    op.create_table(
        "invoices",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "payment_id", sa.String(36), sa.ForeignKey("payments.id"),
            nullable=False, unique=True,
        ),
        sa.Column("invoice_number", sa.String(50), nullable=False, unique=True),
        sa.Column("issued_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("url", sa.String(500)),
    )
    op.create_index("ix_invoices_invoice_number", "invoices", ["invoice_number"])

    # ── Payout outbox ────────────────────────────────────────

    op.create_table(
        "payout_intents",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("order_id", sa.String(36), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("recipient_type", sa.String(20), nullable=False),
        sa.Column("recipient_id", sa.String(36), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("currency", sa.String(3), server_default="KES"),
        sa.Column("status", sa.String(20), server_default="pending"),
        sa.Column("attempts", sa.Integer(), server_default="0"),
        sa.Column("last_error", sa.Text()),
        sa.Column("payment_id", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime()),
        sa.UniqueConstraint(
            "order_id", "recipient_type", name="uq_payout_intent_order_recipient"
        ),
    )
    op.create_index("ix_payout_intents_order_id", "payout_intents", ["order_id"])
    op.create_index("ix_payout_intents_status", "payout_intents", ["status"])

    # ── Webhook log ──────────────────────────────────────────

    op.create_table(
        "processed_webhook_events",
        sa.Column("event_id", sa.String(255), primary_key=True),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("processed_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("processed_webhook_events")
    op.drop_table("payout_intents")
    op.drop_table("invoices")
    op.drop_table("payments")
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("transporters")
    op.drop_table("markets")
    op.drop_table("farmers")
