"""Auth routes: exchange an identity-provider token for an access token.

Route overview:
  POST /session  — verify the provider token, resolve the profile once,
                   issue an access token carrying profile_kind
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from farmconnect.auth.jwt import create_access_token, decode_identity_token
from farmconnect.auth.principal import resolve_principal
from farmconnect.database import get_db
from farmconnect.schemas.auth import SessionRequest, TokenResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/session", response_model=TokenResponse)
async def create_session(body: SessionRequest, db: AsyncSession = Depends(get_db)):
    payload = decode_identity_token(body.identity_token)
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid identity token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    principal = await resolve_principal(db, user_id)
    if principal is None:
        logger.info("User %s has no farmer, market or transporter profile", user_id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No profile found for this user",
        )

    return TokenResponse(
        access_token=create_access_token(principal.id, principal.kind),
        profile_kind=principal.kind,
        profile_id=principal.id,
    )
