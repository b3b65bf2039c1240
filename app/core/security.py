from __future__ import annotations

from fastapi import Header

from app.core import config
from app.core.exceptions import AuthError, InsufficientRoleError
from app.core.models import Caller

ADMIN_ROLE = "admin"
VIEWER_ROLE = "viewer"


def verify_bearer_token(authorization: str | None = Header(default=None)) -> Caller:
    if not authorization:
        raise AuthError()
    if not authorization.startswith("Bearer "):
        raise AuthError()
    token = authorization.split("Bearer ", 1)[1].strip()
    if token and token == config.API_TOKEN:
        return Caller(
            id=config.ADMIN_USER_ID,
            name=config.ADMIN_USER_NAME,
            email=config.ADMIN_USER_EMAIL,
            role=ADMIN_ROLE,
        )
    if token and config.VIEWER_TOKEN and token == config.VIEWER_TOKEN:
        return Caller(id="viewer", name="Viewer", role=VIEWER_ROLE)
    raise AuthError()


def require_admin(caller: Caller) -> Caller:
    if caller.role != ADMIN_ROLE:
        raise InsufficientRoleError(ADMIN_ROLE)
    return caller
