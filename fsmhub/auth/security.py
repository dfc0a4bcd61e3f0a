"""
Bearer-token company context for the workshop API.

Tokens are issued elsewhere; this module only needs to mint them for tooling
and tests. Every workshop operation runs as (actor, company), resolved from
the token subject and checked against the user record.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..models.models import User


bearer_scheme = HTTPBearer(auto_error=False)

STAFF_ROLES = ("admin", "manager", "technician")


@dataclass(frozen=True)
class CompanyContext:
    actor_id: uuid.UUID
    company_id: uuid.UUID
    role: str


def create_access_token(user: User, ttl_seconds: Optional[int] = None) -> str:
    issued = datetime.now(tz=timezone.utc)
    claims = {
        "sub": str(user.id),
        "company_id": str(user.company_id),
        "role": user.role,
        "iat": int(issued.timestamp()),
        "exp": int((issued + timedelta(seconds=ttl_seconds or settings.jwt_ttl_seconds)).timestamp()),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def read_claims(token: str) -> dict:
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token expired")
    except jwt.InvalidTokenError:
        raise _unauthorized("Invalid token")


def get_current_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    if creds is None:
        raise _unauthorized("Not authenticated")
    claims = read_claims(creds.credentials)
    try:
        user_id = uuid.UUID(claims["sub"])
    except ValueError:
        raise _unauthorized("Invalid subject")

    user = db.query(User).filter(User.id == user_id, User.is_active.is_(True)).first()
    if user is None:
        raise _unauthorized("User not active")
    # A token minted for another company is stale after a user moves
    if claims.get("company_id") and claims["company_id"] != str(user.company_id):
        raise _unauthorized("Token company mismatch")
    return user


def get_company_context(user: User = Depends(get_current_user)) -> CompanyContext:
    if user.company_id is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No company context found")
    return CompanyContext(actor_id=user.id, company_id=user.company_id, role=user.role)


def require_roles(*allowed: str):
    """Dependency yielding the CompanyContext when the caller's role is in ``allowed``."""
    def _check(ctx: CompanyContext = Depends(get_company_context)) -> CompanyContext:
        if ctx.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role for this operation")
        return ctx

    return _check
