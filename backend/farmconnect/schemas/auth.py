from pydantic import BaseModel


# ── Session exchange ─────────────────────────────────────────

class SessionRequest(BaseModel):
    """Identity-provider token to exchange for a FarmConnect access token."""
    identity_token: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    profile_kind: str
    profile_id: str
