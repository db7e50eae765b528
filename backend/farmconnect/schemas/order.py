"""Pydantic schemas for orders and status transitions."""

from datetime import date, datetime

from pydantic import BaseModel, field_validator

from farmconnect.models.order import OrderStatus


class OrderItemIn(BaseModel):
    produce_id: str
    quantity: float
    unit_price: float

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Quantity must be positive")
        return v

    @field_validator("unit_price")
    @classmethod
    def price_not_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Unit price cannot be negative")
        return v


class OrderCreate(BaseModel):
    farmer_id: str
    items: list[OrderItemIn]
    transport_cost: float = 0.0
    distance_km: float | None = None
    transporter_id: str | None = None
    currency: str | None = None
    pickup_address: str | None = None
    delivery_address: str | None = None
    delivery_date: date | None = None
    delivery_time: str | None = None
    notes: str | None = None

    @field_validator("items")
    @classmethod
    def items_not_empty(cls, v: list[OrderItemIn]) -> list[OrderItemIn]:
        if not v:
            raise ValueError("An order needs at least one item")
        return v

    @field_validator("transport_cost")
    @classmethod
    def transport_cost_not_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Transport cost cannot be negative")
        return v


class OrderItemOut(BaseModel):
    id: str
    produce_id: str
    quantity: float
    unit_price: float
    total_price: float

    model_config = {"from_attributes": True}


class StatusEntry(BaseModel):
    status: str
    timestamp: str
    actor_id: str | None = None
    note: str | None = None


class OrderOut(BaseModel):
    id: str
    market_id: str
    farmer_id: str
    transporter_id: str | None = None
    status: str
    status_history: list[StatusEntry]
    currency: str
    total_amount: float
    transport_cost: float | None = None
    distance_km: float | None = None
    pickup_address: str | None = None
    delivery_address: str | None = None
    delivery_date: date | None = None
    delivery_time: str | None = None
    notes: str | None = None
    items: list[OrderItemOut] = []
    created_at: datetime
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class StatusUpdate(BaseModel):
    status: OrderStatus
    note: str | None = None
    # Only accepted when confirming a pending order
    transporter_id: str | None = None


class TransporterAssign(BaseModel):
    transporter_id: str
