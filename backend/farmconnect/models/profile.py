"""Farmer, Market and Transporter profiles.

Profiles are owned by the identity/profile side of the platform.  The
order core reads only ids and the transporter rate card.  Which table a
user's id lives in is resolved once at sign-in and carried as
`ProfileKind` in the access token.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from farmconnect.database import Base


class ProfileKind(str, enum.Enum):
    FARMER = "farmer"
    MARKET = "market"
    TRANSPORTER = "transporter"


class Farmer(Base):
    __tablename__ = "farmers"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50))
    farm_name: Mapped[str] = mapped_column(String(255), nullable=False)
    location_address: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class Market(Base):
    __tablename__ = "markets"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    business_name: Mapped[str] = mapped_column(String(255), nullable=False)
    business_type: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50))
    location_address: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class Transporter(Base):
    __tablename__ = "transporters"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_name: Mapped[str | None] = mapped_column(String(255))
    email: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(50))
    vehicle_type: Mapped[str] = mapped_column(String(100), default="Pickup truck")
    location_address: Mapped[str | None] = mapped_column(Text)

    # ── Rate card ────────────────────────────────────────────
    base_rate: Mapped[float] = mapped_column(Float, default=0.0)
    per_km_rate: Mapped[float] = mapped_column(Float, default=0.0)
    refrigeration_premium: Mapped[float] = mapped_column(Float, default=0.0)
    has_refrigeration: Mapped[bool] = mapped_column(Boolean, default=False)

    is_available: Mapped[bool] = mapped_column(Boolean, default=True)
    rating: Mapped[float] = mapped_column(Float, default=0.0)
    total_deliveries: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
