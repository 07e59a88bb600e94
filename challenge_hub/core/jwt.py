from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from jwt.exceptions import PyJWTError

from challenge_hub.core.config import settings


def create_access_grant(scope: str, subject: str, expires_delta: Optional[timedelta] = None) -> str:
    """Sign a grant proving a successful password check for one resource."""
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_GRANT_EXPIRE_MINUTES)

    to_encode = {"exp": expire, "sub": str(subject), "scope": scope}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def read_access_grant(token: str, scope: str) -> Optional[str]:
    """Return the grant's subject if the token is valid for the scope, else None."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except PyJWTError:
        return None
    if payload.get("scope") != scope:
        return None
    return payload.get("sub")
