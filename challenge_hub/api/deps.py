import hmac
from typing import Optional

from fastapi import Depends, HTTPException, Request, Response, status
from fastapi.security import APIKeyHeader

from challenge_hub.core.config import settings
from challenge_hub.core.context import set_session_id
from challenge_hub.services.analytics import SessionIdentity, apply_session_cookie, resolve_session

# Admin API key header name
ADMIN_KEY_HEADER = "X-Admin-Key"

admin_key_header = APIKeyHeader(name=ADMIN_KEY_HEADER, auto_error=False)


async def get_session_identity(request: Request, response: Response) -> SessionIdentity:
    """
    Resolve the anonymous analytics session for this request.

    Async so set_session_id lands in the request context, not a threadpool copy.

    The cookie is written on the dependency response, so routes returning
    their own Response must call apply_session_cookie themselves.
    """
    identity = resolve_session(request.cookies.get(settings.ANALYTICS_SESSION_COOKIE))
    set_session_id(identity.session_id)
    apply_session_cookie(response, identity)
    return identity


def require_admin(api_key: Optional[str] = Depends(admin_key_header)) -> None:
    """
    Guard for /admin routes.

    503 when the deployment has no ADMIN_API_KEY, 403 for a missing or wrong key.
    """
    if not settings.ADMIN_API_KEY:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API is not configured",
        )
    if not api_key or not hmac.compare_digest(api_key.encode(), settings.ADMIN_API_KEY.encode()):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin key",
        )
