"""FastAPI dependencies for authentication and authorization.

Dependencies:
  get_current_principal   → decode the access token, return a Principal
  require_kind(...)       → restrict to specific profile kinds
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from farmconnect.auth.jwt import decode_token
from farmconnect.auth.principal import Principal
from farmconnect.models.profile import ProfileKind

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/session")


async def get_current_principal(token: str = Depends(oauth2_scheme)) -> Principal:
    """Decode the access token and return the acting profile."""
    payload = decode_token(token)
    profile_id: str | None = payload.get("sub")
    kind: str | None = payload.get("profile_kind")
    if not profile_id or payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if kind not in {k.value for k in ProfileKind}:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token carries no profile",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return Principal(kind=kind, id=profile_id)


def require_kind(*kinds: ProfileKind):
    """Dependency factory — restrict to one or more profile kinds.

    Usage:
        @router.post("/")
        async def create(principal: Principal = Depends(require_kind(ProfileKind.MARKET))):
            ...
    """
    async def _check(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.kind not in {k.value for k in kinds}:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires profile: {', '.join(k.value for k in kinds)}",
            )
        return principal

    return _check
