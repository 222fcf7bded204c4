from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException, status, Request
from sqlalchemy.orm import Session

from .database import get_db_session
from .identity import Identity, InvalidIdentityToken, verify_token
from .rate_limit import rate_limit_check


def get_db() -> Session:
    yield from get_db_session()


def get_current_identity(request: Request, authorization: Optional[str] = Header(default=None)) -> Identity:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Access denied. No token provided.")
    token = authorization.split(" ", 1)[1].strip()
    try:
        identity = verify_token(token)
    except InvalidIdentityToken as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    # Rate limit per subject + IP (if enabled)
    rate_limit_check(request, identity.member_id)
    return identity


def require_admin(identity: Identity = Depends(get_current_identity)) -> Identity:
    if not identity.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied. Admins only.")
    return identity
