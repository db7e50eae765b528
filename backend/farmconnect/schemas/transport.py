"""Pydantic schemas for transport quotes."""

from pydantic import BaseModel, field_validator


class QuoteRequest(BaseModel):
    distance_km: float
    # Produce categories in the cart; perishables force refrigeration
    categories: list[str] = []
    needs_refrigeration: bool | None = None

    @field_validator("distance_km")
    @classmethod
    def distance_not_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Distance cannot be negative")
        return v


class TransporterOut(BaseModel):
    id: str
    company_name: str
    vehicle_type: str | None = None
    has_refrigeration: bool
    rating: float | None = None

    model_config = {"from_attributes": True}


class QuoteOut(BaseModel):
    transporter: TransporterOut
    distance_km: float
    base_cost: float
    distance_cost: float
    refrigeration_cost: float
    total_cost: float
    estimated_time: str

    model_config = {"from_attributes": True}
