# carebook/core/security.py
"""
Bearer token verification.

Accounts and login live in the identity service; this service only checks
the HS256 access tokens it signs with the shared JWT_SECRET. mint_token
exists for local runs and tests.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from carebook.core.config import settings

ALGORITHM = "HS256"
ACCESS_TOKEN_TYPE = "access"
REQUIRED_CLAIMS = ("sub", "type", "role")


class InvalidTokenError(Exception):
    """Carries the error code the API reports: invalid_token, invalid_claims, ..."""


def verify_access_token(token: str) -> Dict[str, Any]:
    """
    Claims of a valid, unexpired access token. Anything else raises
    InvalidTokenError.
    """
    if not token:
        raise InvalidTokenError("missing_token")
    try:
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise InvalidTokenError("invalid_token") from exc

    if any(name not in claims for name in REQUIRED_CLAIMS):
        raise InvalidTokenError("invalid_claims")
    if claims["type"] != ACCESS_TOKEN_TYPE:
        raise InvalidTokenError("invalid_token_type")
    return claims


def mint_token(
    user_id: str,
    role: str,
    *,
    email: Optional[str] = None,
    ttl_minutes: Optional[int] = None,
) -> str:
    now = datetime.now(timezone.utc)
    claims: Dict[str, Any] = {
        "sub": user_id,
        "role": role,
        "type": ACCESS_TOKEN_TYPE,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=ttl_minutes or settings.ACCESS_EXPIRES_MIN)).timestamp()),
        "jti": str(uuid.uuid4()),
    }
    if email:
        claims["email"] = email
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=ALGORITHM)
