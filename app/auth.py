"""Credentials and per-request claims.

A :class:`Principal` is resolved once per request at the HTTP boundary and
handed to component entry points; components never decode tokens themselves.
"""

from __future__ import annotations

import hmac
from datetime import timedelta
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel

from app.clock import utcnow
from app.config import settings
from app.errors import Forbidden, Unauthorized

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

SCANNER_ROLE = "scanner"
SCAN_ROLES = frozenset(
    {"admin", "manager", "reception", "security", "housekeeping", "barista", "store", "finance"}
)


class Principal(BaseModel):
    model_config = {"frozen": True}

    user_id: Optional[int] = None
    email: Optional[str] = None
    name: Optional[str] = None
    roles: frozenset[str]
    via: str = "token"

    def has_any(self, roles) -> bool:
        return bool(self.roles & frozenset(roles))

    @property
    def label(self) -> str:
        if self.via == "scanner_key":
            return "scanner"
        return self.email or f"user:{self.user_id}"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(
    user_id: int, email: str, role: str, name: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    expire = utcnow() + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    claims = {"sub": str(user_id), "email": email, "role": role, "name": name, "exp": expire}
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Principal:
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise Unauthorized("Could not validate credentials") from None
    subject = payload.get("sub")
    if subject is None:
        raise Unauthorized("Could not validate credentials")
    roles = payload.get("roles")
    if not isinstance(roles, list):
        roles = [payload["role"]] if payload.get("role") else []
    try:
        user_id = int(subject)
    except (TypeError, ValueError):
        raise Unauthorized("Could not validate credentials") from None
    return Principal(
        user_id=user_id,
        email=payload.get("email"),
        name=payload.get("name"),
        roles=frozenset(roles),
    )


def scanner_key_matches(candidate: Optional[str]) -> bool:
    expected = settings.attendance_api_key
    if not candidate or not expected:
        return False
    return hmac.compare_digest(candidate.encode(), expected.encode())


def require_any(principal: Principal, roles) -> Principal:
    if not principal.has_any(roles):
        raise Forbidden("Insufficient role")
    return principal


def resolve_scan_capability(token: Optional[str], api_key: Optional[str]) -> Principal:
    """Accept either a bearer token with a scan role or the scanner secret."""
    principal = None
    if token:
        try:
            principal = decode_access_token(token)
        except Unauthorized:
            principal = None
    if principal is None:
        if scanner_key_matches(api_key):
            return Principal(roles=frozenset({SCANNER_ROLE}), via="scanner_key")
        raise Unauthorized("Missing or invalid credentials")
    return require_any(principal, SCAN_ROLES)
