"""Request/response bodies of the hosted-checkout endpoints.

Field names follow the web client (camelCase); snake_case is accepted too.
"""

from pydantic import BaseModel, Field

from farmconnect.schemas.payment import PaymentOut


class CheckoutSessionRequest(BaseModel):
    order_id: str | None = Field(default=None, alias="orderId")
    amount: float | None = None
    currency: str | None = None
    success_url: str | None = Field(default=None, alias="successUrl")
    cancel_url: str | None = Field(default=None, alias="cancelUrl")

    model_config = {"populate_by_name": True}


class CheckoutSessionResponse(BaseModel):
    url: str | None = None
    id: str


class SessionStatusResponse(BaseModel):
    status: str
    payment: PaymentOut | None = None
    session: dict
