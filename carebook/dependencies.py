# carebook/dependencies.py
from __future__ import annotations

from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from carebook.core.permission import Principal
from carebook.core.security import InvalidTokenError, verify_access_token
from carebook.db.sql import get_session  # noqa: F401  re-exported for routers

bearer_scheme = HTTPBearer(auto_error=False)

ROLES = {"patient", "doctor", "admin"}


def _unauthorized(code: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=code)


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Principal:
    if credentials is None or not credentials.credentials:
        raise _unauthorized("missing_token")
    try:
        claims = verify_access_token(credentials.credentials)
    except InvalidTokenError as exc:
        raise _unauthorized(str(exc))

    if claims["role"] not in ROLES:
        raise _unauthorized("invalid_role_claim")
    try:
        user_id = UUID(str(claims["sub"]))
    except ValueError:
        raise _unauthorized("invalid_subject")
    return Principal(user_id=user_id, role=claims["role"], email=claims.get("email"))


def require_roles(*roles: str):
    """
    Role guard factory. Example: Depends(require_roles("admin", "doctor"))
    """
    async def _guard(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="insufficient_role",
            )
        return principal

    return _guard
