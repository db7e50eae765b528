"""Common schemas used across the application."""

from pydantic import BaseModel


class EarningsOut(BaseModel):
    """Total settled earnings of a farmer or transporter."""
    recipient_id: str
    total: float
