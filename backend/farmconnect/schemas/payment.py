"""Pydantic schemas for buyer payments, payouts and invoices."""

from datetime import datetime

from pydantic import AliasChoices, BaseModel, Field, field_validator


class PaymentCreate(BaseModel):
    order_id: str
    # Defaults to the order total
    amount: float | None = None
    method: str = "card"
    currency: str | None = None

    @field_validator("amount")
    @classmethod
    def amount_positive(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("Amount must be positive")
        return v

    @field_validator("method")
    @classmethod
    def not_payout(cls, v: str) -> str:
        if v == "payout":
            raise ValueError("Payouts are created by the payout engine")
        return v


class InvoiceOut(BaseModel):
    id: str
    payment_id: str
    invoice_number: str
    issued_at: datetime
    url: str | None = None

    model_config = {"from_attributes": True}


class PaymentOut(BaseModel):
    id: str
    order_id: str
    market_id: str | None = None
    farmer_id: str | None = None
    transporter_id: str | None = None
    amount: float
    currency: str
    method: str
    status: str
    created_at: datetime
    paid_at: datetime | None = None
    metadata: dict | None = Field(
        default=None, validation_alias=AliasChoices("metadata_", "metadata")
    )
    invoice: InvoiceOut | None = None

    model_config = {"from_attributes": True}
