"""The acting party of a request.

A Principal is a tagged profile reference: which kind of profile the user
has (farmer, market or transporter) and its id.  It is resolved once, when
an identity-provider token is exchanged for a FarmConnect access token,
and then read from the token on every request.

`SYSTEM` is the internal actor used when the platform itself changes an
order (e.g. confirming it after a gateway payment).
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from farmconnect.models.profile import Farmer, Market, ProfileKind, Transporter

SYSTEM_KIND = "system"

PROFILE_TABLES = {
    ProfileKind.FARMER: Farmer,
    ProfileKind.MARKET: Market,
    ProfileKind.TRANSPORTER: Transporter,
}


@dataclass(frozen=True)
class Principal:
    kind: str
    id: str | None


SYSTEM = Principal(kind=SYSTEM_KIND, id=None)


async def resolve_principal(db: AsyncSession, user_id: str) -> Principal | None:
    """Find which profile table holds `user_id`.  Called at sign-in only."""
    for kind, model in PROFILE_TABLES.items():
        result = await db.execute(select(model.id).where(model.id == user_id))
        if result.scalar_one_or_none():
            return Principal(kind=kind.value, id=user_id)
    return None
