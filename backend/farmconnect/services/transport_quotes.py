"""Transport quote calculator — ranked delivery prices from transporter rate cards.

    total = base_rate + per_km_rate × distance
            + refrigeration_premium (only when refrigeration is needed)

Non-refrigerated transporters are dropped when the cart holds perishables.
Delivery time assumes an average of 40 km/h in traffic.
"""

import math
from dataclasses import dataclass
from typing import Any, Iterable

PERISHABLE_CATEGORIES = frozenset({"Dairy", "Livestock"})
AVERAGE_SPEED_KMH = 40


@dataclass(frozen=True)
class TransportQuote:
    transporter: Any
    distance_km: float
    base_cost: float
    distance_cost: float
    refrigeration_cost: float
    total_cost: float
    estimated_time: str


def needs_refrigeration_for(categories: Iterable[str | None]) -> bool:
    """True if any cart line belongs to a perishable category."""
    return any(c in PERISHABLE_CATEGORIES for c in categories)


def estimate_delivery_time(distance_km: float) -> str:
    hours = math.ceil(distance_km / AVERAGE_SPEED_KMH)
    return "~1 hour" if hours <= 1 else f"~{hours} hours"


def calculate_quotes(
    transporters: Iterable[Any],
    needs_refrigeration: bool,
    distance_km: float,
) -> list[TransportQuote]:
    """Quote every eligible transporter, cheapest first."""
    quotes = []
    for transporter in transporters:
        if needs_refrigeration and not transporter.has_refrigeration:
            continue

        base_cost = transporter.base_rate or 0.0
        distance_cost = (transporter.per_km_rate or 0.0) * distance_km
        refrigeration_cost = (
            (transporter.refrigeration_premium or 0.0) if needs_refrigeration else 0.0
        )
        quotes.append(TransportQuote(
            transporter=transporter,
            distance_km=distance_km,
            base_cost=base_cost,
            distance_cost=distance_cost,
            refrigeration_cost=refrigeration_cost,
            total_cost=base_cost + distance_cost + refrigeration_cost,
            estimated_time=estimate_delivery_time(distance_km),
        ))

    return sorted(quotes, key=lambda q: q.total_cost)
