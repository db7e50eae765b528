"""JWT decoding for identity-provider tokens and FarmConnect access tokens.

Identity-provider token claims (verified with IDENTITY_JWT_SECRET):
  - sub:            user ID (equal to the profile id)

Access token claims (issued here, signed with SECRET_KEY):
  - sub:            profile ID
  - profile_kind:   "farmer" | "market" | "transporter"
  - type:           "access"
  - exp:            expiry timestamp
"""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from farmconnect.config import settings

ALGORITHM = settings.jwt_algorithm


def create_access_token(
    profile_id: str,
    profile_kind: str,
    expires_delta: timedelta | None = None,
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    payload = {
        "sub": profile_id,
        "profile_kind": profile_kind,
        "type": "access",
        "exp": expire,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and validate an access token. Returns empty dict on failure."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return {}


def decode_identity_token(token: str) -> dict:
    """Decode a token issued by the external identity provider."""
    try:
        return jwt.decode(
            token,
            settings.identity_jwt_secret,
            algorithms=[ALGORITHM],
            options={"verify_aud": False},
        )
    except JWTError:
        return {}
