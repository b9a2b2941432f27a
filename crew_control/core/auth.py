"""Local bearer-token authentication and caller identity resolution."""

from __future__ import annotations

from dataclasses import dataclass
from hmac import compare_digest

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from crew_control.core.config import settings
from crew_control.core.logging import get_logger

logger = get_logger(__name__)
security = HTTPBearer(auto_error=False)
SECURITY_DEP = Depends(security)

USER_ID_HEADER = "X-User-Id"
DEFAULT_USER_ID = "local-user"


@dataclass(frozen=True)
class ActorContext:
    """Authenticated caller; `user_id` becomes `creator_id` on new records."""

    user_id: str
    is_admin: bool = False


def _extract_bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    value = authorization.strip()
    if not value.lower().startswith("bearer "):
        return None
    token = value.split(" ", maxsplit=1)[1].strip()
    return token or None


def resolve_actor(request: Request) -> ActorContext | None:
    """Return the caller for a valid token, otherwise None."""
    token = _extract_bearer_token(request.headers.get("Authorization"))
    expected = settings.local_auth_token.strip()
    if token is None or not expected or not compare_digest(token, expected):
        return None
    user_id = request.headers.get(USER_ID_HEADER, "").strip() or DEFAULT_USER_ID
    return ActorContext(user_id=user_id, is_admin=user_id in settings.admin_ids)


async def get_actor(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = SECURITY_DEP,
) -> ActorContext:
    """Require a valid bearer token."""
    _ = credentials
    actor = resolve_actor(request)
    if actor is None:
        logger.info("auth.rejected", extra={"path": request.url.path})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    return actor


def require_admin(actor: ActorContext) -> None:
    if not actor.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only admins can review workflows.",
        )
