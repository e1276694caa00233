"""Bearer token authentication against the identity provider's JWTs."""
from __future__ import annotations

from typing import Any, Dict

import jwt
from fastapi import Depends, Header, HTTPException, status

from src.core.config import settings
from src.core.exceptions import UnauthorizedError


def require_auth(authorization: str = Header(...)) -> Dict[str, Any]:
    """Validate a bearer token and return the caller's user id and claims."""

    if not authorization or not authorization.lower().startswith("bearer "):
        raise UnauthorizedError("Missing bearer token")

    token = authorization.split(" ", 1)[1].strip()
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALG],
        )
    except jwt.InvalidTokenError as exc:
        raise UnauthorizedError("Invalid token") from exc

    subject = payload.get("sub")
    if not subject:
        raise UnauthorizedError("Subject missing in token")

    return {"user_id": str(subject), "claims": payload}


def require_admin(auth: Dict[str, Any] = Depends(require_auth)) -> Dict[str, Any]:
    """Allow only tokens carrying the admin role."""

    claims = auth["claims"]
    roles = claims.get("roles") or []
    if claims.get("role") != settings.ADMIN_ROLE and settings.ADMIN_ROLE not in roles:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )
    return auth
