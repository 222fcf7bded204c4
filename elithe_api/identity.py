from __future__ import annotations

"""
Identity verification for bearer tokens issued by the external identity
provider. Tokens are HS256 JWTs whose ``sub`` is the member id; the role lives
in ``user_metadata.role`` (falling back to a top-level ``role`` claim).
"""

import logging
from dataclasses import dataclass
from typing import Optional

import jwt

from .config import get_settings


logger = logging.getLogger(__name__)


class InvalidIdentityToken(Exception):
    pass


@dataclass(frozen=True)
class Identity:
    member_id: str
    role: str = "member"
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def verify_token(token: str) -> Identity:
    settings = get_settings()
    options = {"require": ["sub"]}
    if not settings.jwt_audience:
        options["verify_aud"] = False
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options=options,
        )
    except jwt.ExpiredSignatureError as exc:
        raise InvalidIdentityToken("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        logger.info("Rejected access token: %s", exc)
        raise InvalidIdentityToken("Invalid token") from exc

    metadata = claims.get("user_metadata") or {}
    role = metadata.get("role") or claims.get("role") or "member"
    if role not in ("admin", "member"):
        # Provider-level roles such as 'authenticated' carry no club permissions
        role = "member"
    return Identity(member_id=str(claims["sub"]), role=role, email=claims.get("email"))
