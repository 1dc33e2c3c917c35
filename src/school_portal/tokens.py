"""Signed invite tokens (HS256 JWT)."""

from datetime import datetime, timezone
from typing import Any, Dict

from jose import ExpiredSignatureError, JWTError, jwt

from school_portal.errors import InvalidTokenError

ALGORITHM = "HS256"
TOKEN_TYPE = "invite"


def create_invite_token(invite_id: str, email: str, role: str, expires_at: datetime, secret: str) -> str:
    """Sign a token that identifies one invite until ``expires_at`` (UTC)."""
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    claims = {
        "sub": invite_id,
        "email": email,
        "role": role,
        "type": TOKEN_TYPE,
        "exp": expires_at,
    }
    return jwt.encode(claims, secret, algorithm=ALGORITHM)


def decode_invite_token(token: str, secret: str) -> Dict[str, Any]:
    """Verify signature and expiry and return the claims.

    Raises:
        InvalidTokenError: if the token is malformed, forged, expired or not
            an invite token.
    """
    try:
        claims = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        raise InvalidTokenError("Invite token has expired") from None
    except JWTError:
        raise InvalidTokenError() from None

    if claims.get("type") != TOKEN_TYPE or not claims.get("sub"):
        raise InvalidTokenError()
    return claims
