"""Transport quotes.

Endpoints:
    POST /api/transport/quotes   Ranked quotes from available transporters
"""

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from farmconnect.auth.deps import get_current_principal
from farmconnect.auth.principal import Principal
from farmconnect.database import get_db
from farmconnect.models.profile import Transporter
from farmconnect.schemas.transport import QuoteOut, QuoteRequest
from farmconnect.services.transport_quotes import calculate_quotes, needs_refrigeration_for

router = APIRouter()


@router.post("/quotes", response_model=list[QuoteOut])
async def quote_transport(
    body: QuoteRequest,
    db: AsyncSession = Depends(get_db),
    _principal: Principal = Depends(get_current_principal),
):
    needs_refrigeration = body.needs_refrigeration
    if needs_refrigeration is None:
        needs_refrigeration = needs_refrigeration_for(body.categories)

    result = await db.execute(
        select(Transporter).where(Transporter.is_available == True)  # noqa: E712
    )
    quotes = calculate_quotes(result.scalars().all(), needs_refrigeration, body.distance_km)
    return [QuoteOut.model_validate(q) for q in quotes]
