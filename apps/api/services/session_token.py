"""Signed bearer tokens naming the Snaptastic user behind a request.

Sign-in itself happens in the identity provider; the API only needs a
subject (and optionally an email) it can trust.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from config import settings


SESSION_TOKEN_TYPE = "snaptastic_session"


def create_session_token(user_id: str, email: Optional[str] = None) -> str:
    issued = datetime.now(timezone.utc)
    claims: Dict[str, Any] = {
        "sub": user_id,
        "type": SESSION_TOKEN_TYPE,
        "iat": issued,
        "exp": issued + timedelta(hours=max(int(settings.JWT_EXPIRATION_HOURS), 1)),
    }
    if email:
        claims["email"] = email
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_session_token(token: str) -> Dict[str, Any]:
    """Return the claims of a valid session token.

    Raises ValueError for bad signatures, expiry, a foreign token type or a
    missing subject.
    """
    try:
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as exc:
        raise ValueError("Invalid or expired session token.") from exc

    if claims.get("type") != SESSION_TOKEN_TYPE:
        raise ValueError("Invalid session token type.")
    if not str(claims.get("sub") or "").strip():
        raise ValueError("Session token missing subject.")
    return claims
